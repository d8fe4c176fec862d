
class WoofError(Exception):
	pass

class HTTPError(WoofError):
	"""Errors that map onto an HTTP status sent back to the peer"""
	status = 500
	reason = 'Internal Server Error'

	def __init__(self, message = None):
		self.message = message
		if self.message is None:
			self.message = self.reason
		super().__init__(self.message)

class ProtocolError(HTTPError):
	status = 400
	reason = 'Bad Request'

class ForbiddenError(HTTPError):
	status = 403
	reason = 'Forbidden'

class UploadsDisabledError(HTTPError):
	status = 501
	reason = 'Not Implemented'

class NotFoundTargetError(WoofError):
	def __init__(self, path, message = None):
		self.path = path
		self.message = message
		if self.message is None:
			self.message = '%s: target vanished after the server started' % path
		super().__init__(self.message)

class NameCollisionExhaustedError(WoofError):
	pass

class TargetError(WoofError):
	pass

class ClientError(WoofError):
	pass
