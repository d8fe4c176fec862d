import enum
import time

class ControllerState(enum.Enum):
	ACCEPTING = 'ACCEPTING'
	DRAINING = 'DRAINING'
	STOPPED = 'STOPPED'

class ServerReport:
	def __init__(self, runtime:float, downloads:int, requests:int, redirects:int):
		self.runtime = runtime
		self.downloads = downloads
		self.requests = requests
		self.redirects = redirects

	def __str__(self):
		return 'Server stopped after %.1fs: %s download(s) served, %s request(s) received (%s redirect(s))' % \
			(self.runtime, self.downloads, self.requests, self.redirects)

class ServerState:
	"""
	Process-wide bookkeeping of the controller.
	Only the controller's own event handlers touch this object, workers
	report back through the completion channel instead.
	"""
	def __init__(self, max_downloads:int):
		if max_downloads < 1:
			raise ValueError('invalid download count: %s' % max_downloads)
		self.max_downloads = max_downloads
		self.completed_downloads = 0
		self.dispatched = 0
		self.requests = 0
		self.redirects = 0
		self.status = ControllerState.ACCEPTING
		self.started_at = time.monotonic()
		self.stopped_at = None

	@property
	def running(self):
		return self.status == ControllerState.ACCEPTING

	def record_completion(self):
		"""Returns True if the completion was counted against the download budget"""
		if self.status == ControllerState.STOPPED:
			return False
		if self.completed_downloads >= self.max_downloads:
			return False

		self.completed_downloads += 1
		if self.completed_downloads >= self.max_downloads:
			self.request_shutdown()
		return True

	def request_shutdown(self):
		if self.status == ControllerState.ACCEPTING:
			self.status = ControllerState.DRAINING

	def stop(self):
		self.request_shutdown()
		if self.status == ControllerState.DRAINING:
			self.status = ControllerState.STOPPED
			self.stopped_at = time.monotonic()

	def get_runtime(self):
		end = self.stopped_at
		if end is None:
			end = time.monotonic()
		return end - self.started_at

	def get_report(self):
		return ServerReport(self.get_runtime(), self.completed_downloads, self.requests, self.redirects)
