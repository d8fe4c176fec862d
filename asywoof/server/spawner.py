import os
import signal
import multiprocessing as mp
from typing import Callable, Dict, List

from asywoof import logger

# keeps every completion message well below PIPE_BUF
MAX_ERROR_LENGTH = 256

class TransferCompleted:
	"""Message a worker sends to the controller once its transfer is over"""
	def __init__(self, worker_id:int, pid:int, success:bool, error:str = None):
		self.worker_id = worker_id
		self.pid = pid
		self.success = success
		self.error = error

	def __repr__(self):
		return 'TransferCompleted(worker_id=%s, pid=%s, success=%s, error=%r)' % \
			(self.worker_id, self.pid, self.success, self.error)

class CompletionChannel:
	"""
	One-way pipe from the workers to the controller.
	Messages are tiny (errors are cut to MAX_ERROR_LENGTH) so concurrent writers do not interleave.
	"""
	def __init__(self, ctx):
		self.reader, self.writer = ctx.Pipe(duplex = False)

	def fileno(self):
		return self.reader.fileno()

	def notify_parent_on_completion(self, event:TransferCompleted):
		self.writer.send(event)

	def receive_all(self) -> List[TransferCompleted]:
		events = []
		while self.reader.closed is False and self.reader.poll():
			try:
				events.append(self.reader.recv())
			except EOFError:
				break
		return events

	def close(self):
		self.reader.close()
		self.writer.close()

class WorkerHandle:
	def __init__(self, worker_id:int, process):
		self.worker_id = worker_id
		self.process = process
		self.pid = process.pid

	def is_alive(self):
		return self.process.is_alive()

	def __repr__(self):
		return 'WorkerHandle(worker_id=%s, pid=%s)' % (self.worker_id, self.pid)

def _reset_child_signals():
	# the controller owns interrupt handling, an in-flight transfer is never cut short
	try:
		signal.set_wakeup_fd(-1)
	except ValueError:
		pass
	signal.signal(signal.SIGINT, signal.SIG_IGN)
	signal.signal(signal.SIGTERM, signal.SIG_DFL)

def _run_worker(channel:CompletionChannel, worker_id:int, work:Callable, args, close_fds):
	_reset_child_signals()
	for obj in close_fds:
		try:
			obj.close()
		except OSError:
			pass

	success = False
	error = None
	try:
		work(*args)
		success = True
	except (BrokenPipeError, ConnectionResetError) as e:
		error = str(e)[:MAX_ERROR_LENGTH]
		logger.info('[WORKER %s] Client went away: %s' % (worker_id, e))
	except Exception as e:
		error = str(e)[:MAX_ERROR_LENGTH]
		logger.exception('[WORKER %s] Transfer failed' % worker_id)
	finally:
		channel.notify_parent_on_completion(TransferCompleted(worker_id, os.getpid(), success, error))

class WorkerSpawner:
	"""
	Runs every transfer in its own OS process.
	spawn() hands back the process handle, completion is reported through the channel,
	reap() releases finished children independently of that.
	"""
	def __init__(self, start_method:str = 'fork'):
		self.ctx = mp.get_context(start_method)
		self.channel = CompletionChannel(self.ctx)
		self.workers:Dict[int, WorkerHandle] = {}
		self.id_counter = 0

	def spawn(self, work:Callable, *args, close_fds = None):
		if close_fds is None:
			close_fds = []
		worker_id = self.id_counter
		self.id_counter += 1
		process = self.ctx.Process(
			target = _run_worker,
			args = (self.channel, worker_id, work, args, close_fds),
			name = 'asywoof-worker-%s' % worker_id,
		)
		process.start()
		handle = WorkerHandle(worker_id, process)
		self.workers[worker_id] = handle
		logger.debug('[SPAWNER] Started worker %s with pid %s' % (worker_id, process.pid))
		return handle

	def reap(self):
		finished = []
		for worker_id, handle in list(self.workers.items()):
			if handle.is_alive() is True:
				continue
			process = handle.process
			process.join(0)
			logger.debug('[SPAWNER] Reaped worker %s (pid %s, exitcode %s)' % (worker_id, process.pid, process.exitcode))
			process.close()
			del self.workers[worker_id]
			finished.append(worker_id)
		return finished

	def terminate_all(self):
		"""Sends SIGTERM to every worker still running, reap() collects them afterwards"""
		for worker_id, handle in self.workers.items():
			if handle.is_alive() is True:
				logger.debug('[SPAWNER] Terminating worker %s (pid %s)' % (worker_id, handle.pid))
				handle.process.terminate()

	def alive_count(self):
		return len(self.workers)

	def close(self):
		self.reap()
		self.channel.close()
