import os
import re
import ssl
import time
import asyncio
import urllib.parse
from typing import Callable, List, Tuple

import h11
from tqdm import tqdm

from asywoof import logger
from asywoof._version import __version__
from asywoof.common.constants import CHUNK_SIZE, CLIENT_TIMEOUT
from asywoof.common.exceptions import ClientError
from asywoof.common.naming import sanitize_filename, create_exclusive

DEFAULT_FILENAME = 'woof-out.bin'
REDIRECT_CODES = (301, 302, 303, 307, 308)
MEGABYTE = 1024*1024

http_url_pattern = re.compile(r'^(https?)://([^/?#]+)([^#]*)', re.IGNORECASE)
disposition_filename_re = re.compile(r'filename\s*=\s*"?([^";]+)"?', re.IGNORECASE)

def parse_url(url:str):
	"""Returns (scheme, host, port, request target) or raises ClientError for anything but http(s)"""
	m = http_url_pattern.match(url)
	if m is None:
		raise ClientError('%s is not an http:// or https:// URL' % url)
	parts = urllib.parse.urlsplit(url)
	scheme = parts.scheme.lower()
	if parts.hostname is None:
		raise ClientError('No host in URL %s' % url)
	try:
		port = parts.port
	except ValueError as e:
		raise ClientError('Invalid port in URL %s' % url) from e
	if port is None:
		port = 443 if scheme == 'https' else 80
	target = parts.path or '/'
	if parts.query:
		target += '?' + parts.query
	return scheme, parts.hostname, port, target

def filename_from_response(url:str, headers:List[Tuple[bytes, bytes]]):
	"""Suggested local filename: Content-Disposition first, then the last path segment of the URL"""
	name = None
	for key, value in headers:
		if key.lower() == b'content-disposition':
			m = disposition_filename_re.search(value.decode('latin-1'))
			if m is not None:
				name = urllib.parse.unquote(m.group(1))
			break
	if not name:
		path = urllib.parse.urlsplit(url).path
		name = urllib.parse.unquote(path.rsplit('/', 1)[-1])
	if not name:
		return DEFAULT_FILENAME
	return sanitize_filename(name, default = DEFAULT_FILENAME)

def get_content_length(headers:List[Tuple[bytes, bytes]]):
	for key, value in headers:
		if key.lower() == b'content-length':
			try:
				return int(value)
			except ValueError:
				return None
	return None

def default_negotiator(suggested_name:str, size:int = None):
	"""Takes the server's suggestion as is, never overwrites"""
	return suggested_name, False

class DownloadResult:
	def __init__(self, path:str, size:int, elapsed:float):
		self.path = path
		self.size = size
		self.elapsed = elapsed
		self.rate = size / elapsed if elapsed > 0 else float(size)

	def __str__(self):
		return '%s: %d bytes in %.2fs (%.1f KiB/s)' % (self.path, self.size, self.elapsed, self.rate / 1024)

class HTTPClientConnection:
	"""Single request/response exchange over a fresh connection, framed by h11"""
	def __init__(self, host:str, port:int, ssl_ctx = None, timeout:int = CLIENT_TIMEOUT):
		self.host = host
		self.port = port
		self.ssl_ctx = ssl_ctx
		self.timeout = timeout
		self.reader = None
		self.writer = None
		self.httpconn = None

	async def connect(self):
		self.httpconn = h11.Connection(our_role=h11.CLIENT)
		try:
			self.reader, self.writer = await asyncio.wait_for(
				asyncio.open_connection(self.host, self.port, ssl = self.ssl_ctx),
				timeout = self.timeout
			)
		except (OSError, asyncio.TimeoutError) as e:
			raise ClientError('Could not connect to %s:%s: %s' % (self.host, self.port, e)) from e

	async def __next_event(self):
		while True:
			try:
				event = self.httpconn.next_event()
			except h11.RemoteProtocolError as e:
				raise ClientError('Protocol error from server: %s' % e) from e
			if event is not h11.NEED_DATA:
				return event
			try:
				data = await asyncio.wait_for(self.reader.read(CHUNK_SIZE), timeout = self.timeout)
			except asyncio.TimeoutError as e:
				raise ClientError('Timeout waiting for %s:%s' % (self.host, self.port)) from e
			self.httpconn.receive_data(data)

	async def __send(self, event):
		data = self.httpconn.send(event)
		if data:
			self.writer.write(data)
			await self.writer.drain()

	async def request(self, method:str, target:str) -> h11.Response:
		host = self.host if ':' not in self.host else '[%s]' % self.host
		headers = [
			('Host', '%s:%s' % (host, self.port)),
			('User-Agent', 'asywoof/%s' % __version__),
			('Connection', 'close'),
		]
		await self.__send(h11.Request(method=method, target=target, headers=headers))
		await self.__send(h11.EndOfMessage())
		while True:
			event = await self.__next_event()
			if type(event) is h11.Response:
				return event
			if type(event) in (h11.EndOfMessage, h11.ConnectionClosed):
				raise ClientError('Server closed the connection without a response')

	async def iter_body(self):
		while True:
			event = await self.__next_event()
			if type(event) is h11.Data:
				yield bytes(event.data)
			elif type(event) in (h11.EndOfMessage, h11.ConnectionClosed):
				return

	async def close(self):
		if self.writer is not None:
			self.writer.close()
			try:
				await self.writer.wait_closed()
			except OSError:
				pass
			self.writer = None

class WoofClient:
	"""
	Downloads whatever an asywoof (or any plain HTTP) server offers at url.
	negotiator(suggested_name, size) -> (filename, overwrite) lets the caller confirm or
	override the destination name.
	"""
	def __init__(self, url:str, negotiator:Callable = None, dest_dir:str = '.', progress:bool = True, timeout:int = CLIENT_TIMEOUT, max_redirects:int = 5, ssl_ctx = None):
		parse_url(url)
		self.url = url
		self.negotiator = negotiator
		self.dest_dir = dest_dir
		self.progress = progress
		self.timeout = timeout
		self.max_redirects = max_redirects
		self.ssl_ctx = ssl_ctx
		if self.negotiator is None:
			self.negotiator = default_negotiator

	async def open(self, method:str, url:str):
		"""Sends the request, following redirects. Returns (connection, response, final url)"""
		for _ in range(self.max_redirects + 1):
			scheme, host, port, target = parse_url(url)
			ssl_ctx = None
			if scheme == 'https':
				ssl_ctx = self.ssl_ctx if self.ssl_ctx is not None else ssl.create_default_context()
			conn = HTTPClientConnection(host, port, ssl_ctx, self.timeout)
			await conn.connect()
			try:
				response = await conn.request(method, target)
			except BaseException:
				await conn.close()
				raise

			location = None
			for key, value in response.headers:
				if key.lower() == b'location':
					location = value.decode('latin-1')
			if response.status_code in REDIRECT_CODES and location is not None:
				await conn.close()
				logger.debug('[CLIENT] %s redirected to %s' % (url, location))
				url = urllib.parse.urljoin(url, location)
				continue
			return conn, response, url

		raise ClientError('Too many redirects for %s' % self.url)

	async def fetch_metadata(self):
		"""HEAD request, returns (content length or None, suggested filename)"""
		conn, response, url = await self.open('HEAD', self.url)
		await conn.close()
		if response.status_code != 200:
			raise ClientError('Server answered %s %s' % (response.status_code, response.reason.decode('latin-1')))
		return get_content_length(response.headers), filename_from_response(url, response.headers)

	def create_progress(self, name:str, size:int):
		if size is None:
			return tqdm(desc=name, unit='MB', disable = not self.progress)
		return tqdm(desc=name, total=size, unit='B', unit_scale=True, unit_divisor=1024, disable = not self.progress)

	async def download(self) -> DownloadResult:
		size, suggested = await self.fetch_metadata()
		name, overwrite = self.negotiator(suggested, size)
		if not name:
			name = suggested

		f, path = create_exclusive(self.dest_dir, name, overwrite = overwrite)
		if os.path.basename(path) != os.path.basename(name):
			logger.info('[CLIENT] Alternate filename is: %s' % path)
		logger.info('[CLIENT] Downloading %s -> %s' % (self.url, path))

		start = time.monotonic()
		written = 0
		pbar = None
		try:
			with f:
				conn, response, url = await self.open('GET', self.url)
				try:
					if response.status_code != 200:
						raise ClientError('Server answered %s %s' % (response.status_code, response.reason.decode('latin-1')))
					length = get_content_length(response.headers)
					if length is None:
						length = size
					pbar = self.create_progress(os.path.basename(path), length)
					async for chunk in conn.iter_body():
						f.write(chunk)
						if length is None:
							pbar.update((written + len(chunk)) // MEGABYTE - written // MEGABYTE)
						else:
							pbar.update(len(chunk))
						written += len(chunk)
				finally:
					await conn.close()
			if length is not None and written != length:
				raise ClientError('Transfer incomplete: got %d of %d bytes' % (written, length))
		except BaseException as e:
			try:
				os.unlink(path)
			except OSError:
				pass
			if isinstance(e, Exception) and not isinstance(e, ClientError):
				raise ClientError('Download of %s failed: %s' % (self.url, e)) from e
			raise
		finally:
			if pbar is not None:
				pbar.close()

		result = DownloadResult(path, written, time.monotonic() - start)
		logger.info('[CLIENT] Done: %s' % result)
		return result
