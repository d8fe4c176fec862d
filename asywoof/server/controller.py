import enum
import signal
import socket
import asyncio
import urllib.parse
from typing import Set

from asywoof import logger
from asywoof.common.config import WoofConfig
from asywoof.common.target import TransferTarget
from asywoof.common.state import ServerState, ServerReport
from asywoof.common.exceptions import NotFoundTargetError
from asywoof.protocol.http import HTTPRequest, HTTPResponse
from asywoof.server.spawner import WorkerSpawner
from asywoof.server.worker import TransferWorker
from asywoof.server.pages import UPLOAD_FORM, redirect_page

class Route(enum.Enum):
	REDIRECT = 'REDIRECT'
	SEND_HEADERS = 'SEND_HEADERS'
	TRANSFER = 'TRANSFER'
	UPLOAD_FORM = 'UPLOAD_FORM'
	UPLOAD = 'UPLOAD'

class TransferServer:
	"""
	Accepts connections until the download budget is used up or an interrupt arrives.
	Redirects, HEAD requests and the upload form are answered right here, real
	transfers are handed to a freshly spawned worker process.
	"""
	def __init__(self, config:WoofConfig, target:TransferTarget = None, spawner:WorkerSpawner = None):
		self.config = config
		self.target = target
		self.spawner = spawner
		self.state = ServerState(config.count)
		self.worker = TransferWorker(target, config)
		self.listen_sock = None
		self.bound_port = None
		self.open_sockets:Set[socket.socket] = set()
		self.connection_tasks:Set[asyncio.Task] = set()
		self.in_flight:Set[int] = set()
		self.interrupts = 0

		if self.spawner is None:
			self.spawner = WorkerSpawner()
		if self.target is None and self.config.upload is False:
			raise ValueError('Either a target to serve or upload mode is required')

	def bind(self):
		family = socket.AF_INET6 if ':' in self.config.ip else socket.AF_INET
		sock = socket.socket(family, socket.SOCK_STREAM)
		sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		try:
			sock.bind((self.config.ip, self.config.port))
			sock.listen(128)
		except OSError:
			sock.close()
			raise
		sock.setblocking(False)
		self.listen_sock = sock
		self.bound_port = sock.getsockname()[1]
		return sock

	@property
	def port(self):
		if self.bound_port is None:
			return self.config.port
		return self.bound_port

	def get_canonical_path(self):
		if self.config.upload is True:
			return '/'
		return self.target.get_canonical_path()

	def get_url(self, host:str = None):
		if host is None:
			host = self.config.ip or '127.0.0.1'
		if ':' in host:
			host = '[%s]' % host
		return 'http://%s:%s%s' % (host, self.port, self.get_canonical_path())

	def route(self, request:HTTPRequest) -> Route:
		if request.method == 'POST':
			return Route.UPLOAD
		if self.config.upload is True:
			return Route.UPLOAD_FORM
		if request.get_path() != urllib.parse.unquote(self.get_canonical_path()):
			return Route.REDIRECT
		if request.method == 'HEAD':
			return Route.SEND_HEADERS
		return Route.TRANSFER

	def build_inline_response(self, route:Route) -> HTTPResponse:
		if route == Route.REDIRECT:
			location = self.get_canonical_path()
			return HTTPResponse(302, headers = [('Location', location)], body = redirect_page(location))
		if route == Route.UPLOAD_FORM:
			return HTTPResponse(200, body = UPLOAD_FORM)

		# HEAD gets exactly the head a GET would get
		return HTTPResponse(
			200,
			content_type = self.target.content_type,
			content_length = self.target.get_size(),
			headers = self.target.get_headers(),
		)

	async def send_inline(self, sock:socket.socket, response:HTTPResponse, include_body:bool = True):
		loop = asyncio.get_running_loop()
		await loop.sock_sendall(sock, response.to_bytes(include_body = include_body))

	async def handle_connection(self, sock:socket.socket, addr):
		dispatched = False
		try:
			request, err = await HTTPRequest.from_socket(sock, timeout = self.config.client_timeout)
			if err is not None:
				logger.debug('[CONTROLLER] Bad request from %s: %s' % (addr, err))
				response = HTTPResponse(err.status, err.reason, content_type = 'text/plain', body = '%s %s\n' % (err.status, err.message))
				await self.send_inline(sock, response)
				return

			route = self.route(request)
			logger.debug('[CONTROLLER] %s %s from %s -> %s' % (request.method, request.uri, addr, route.name))
			if route in (Route.TRANSFER, Route.UPLOAD):
				if self.state.running is False:
					logger.info('[CONTROLLER] Not accepting transfers anymore, dropping %s' % (addr,))
					return
				self.dispatch(sock, request)
				dispatched = True
				return

			if route == Route.REDIRECT:
				self.state.redirects += 1
			try:
				response = self.build_inline_response(route)
			except NotFoundTargetError as e:
				logger.error('[CONTROLLER] %s' % e)
				response = HTTPResponse(404, content_type = 'text/plain', body = '404 Not Found\n')
			await self.send_inline(sock, response, include_body = request.method != 'HEAD')

		except OSError as e:
			logger.debug('[CONTROLLER] Connection from %s ended: %s' % (addr, e))
		except Exception:
			logger.exception('[CONTROLLER] Error handling connection from %s' % (addr,))
		finally:
			self.open_sockets.discard(sock)
			if dispatched is False:
				# forked workers may hold a copy of this descriptor
				try:
					sock.shutdown(socket.SHUT_RDWR)
				except OSError:
					pass
			sock.close()

	def dispatch(self, sock:socket.socket, request:HTTPRequest):
		close_fds = [self.listen_sock] + [s for s in self.open_sockets if s is not sock]
		handle = self.spawner.spawn(self.worker.run, sock, request, close_fds = close_fds)
		self.in_flight.add(handle.worker_id)
		self.state.dispatched += 1
		logger.info('[CONTROLLER] %s %s handed to worker %s (pid %s)' % (request.method, request.uri, handle.worker_id, handle.pid))
		return handle

	def __count_completion(self, worker_id:int, success:bool):
		if worker_id not in self.in_flight:
			return
		self.in_flight.discard(worker_id)
		if self.state.record_completion() is True:
			logger.info('[CONTROLLER] Worker %s finished (%s), %s/%s download(s) done' % \
				(worker_id, 'ok' if success else 'failed', self.state.completed_downloads, self.state.max_downloads))
			if self.state.completed_downloads == self.state.max_downloads:
				logger.info('[CONTROLLER] Download limit reached, no new transfers will be accepted')
		else:
			logger.debug('[CONTROLLER] Worker %s finished after the budget was used up' % worker_id)

	def __on_completion(self):
		for event in self.spawner.channel.receive_all():
			if event.error is not None:
				logger.debug('[CONTROLLER] Worker %s reported: %s' % (event.worker_id, event.error))
			self.__count_completion(event.worker_id, event.success)

	def reap_workers(self):
		finished = self.spawner.reap()
		if len(finished) == 0:
			return
		# events written right before exit are still in the pipe
		self.__on_completion()
		for worker_id in finished:
			if worker_id in self.in_flight:
				logger.warning('[CONTROLLER] Worker %s exited without reporting back' % worker_id)
				self.__count_completion(worker_id, False)

	def request_shutdown(self, sig = None):
		if sig is not None:
			self.interrupts += 1
			if self.interrupts > 1 and self.spawner.alive_count() > 0:
				# the operator asked twice, stop waiting for the transfers
				logger.warning('[CONTROLLER] Got signal %s again, terminating %s transfer(s)' % \
					(signal.Signals(sig).name, self.spawner.alive_count()))
				self.spawner.terminate_all()
			else:
				logger.info('[CONTROLLER] Got signal %s, shutting down' % signal.Signals(sig).name)
		self.state.request_shutdown()

	def __install_signal_handlers(self, loop):
		installed = []
		for sig in (signal.SIGINT, signal.SIGTERM):
			try:
				loop.add_signal_handler(sig, self.request_shutdown, sig)
				installed.append(sig)
			except (NotImplementedError, RuntimeError, ValueError):
				logger.debug('[CONTROLLER] Could not install handler for %s' % sig)
		return installed

	async def accept_loop(self):
		while self.state.running is True:
			try:
				sock, addr = self.listen_sock.accept()
			except (BlockingIOError, InterruptedError):
				self.reap_workers()
				await asyncio.sleep(self.config.poll_interval)
				continue
			except OSError as e:
				logger.warning('[CONTROLLER] accept failed: %s' % e)
				await asyncio.sleep(self.config.poll_interval)
				continue

			self.state.requests += 1
			sock.setblocking(False)
			self.open_sockets.add(sock)
			task = asyncio.create_task(self.handle_connection(sock, addr))
			self.connection_tasks.add(task)
			task.add_done_callback(self.connection_tasks.discard)
			await asyncio.sleep(0)

	async def drain(self):
		for task in list(self.connection_tasks):
			task.cancel()
		if len(self.connection_tasks) > 0:
			await asyncio.gather(*self.connection_tasks, return_exceptions = True)

		if self.spawner.alive_count() > 0:
			logger.info('[CONTROLLER] Waiting for %s transfer(s) to finish' % self.spawner.alive_count())
		while self.spawner.alive_count() > 0:
			self.reap_workers()
			await asyncio.sleep(self.config.poll_interval)
		self.__on_completion()

	async def serve(self) -> ServerReport:
		"""Runs the server until it is STOPPED, returns the final report"""
		loop = asyncio.get_running_loop()
		if self.listen_sock is None:
			self.bind()

		loop.add_reader(self.spawner.channel.fileno(), self.__on_completion)
		signals = self.__install_signal_handlers(loop)
		logger.info('[CONTROLLER] Serving %s at %s' % (self.target.path if self.target is not None else 'uploads', self.get_url()))
		try:
			await self.accept_loop()
			self.listen_sock.close()
			await self.drain()
		finally:
			for sig in signals:
				loop.remove_signal_handler(sig)
			loop.remove_reader(self.spawner.channel.fileno())
			self.listen_sock.close()
			self.spawner.close()
			self.state.stop()

		report = self.state.get_report()
		logger.info('[CONTROLLER] %s' % report)
		return report
