import os
import socket

from asywoof import logger
from asywoof.common.constants import UPLOAD_FIELD
from asywoof.common.target import TransferTarget
from asywoof.common.config import WoofConfig
from asywoof.common.exceptions import HTTPError, ProtocolError, ForbiddenError, UploadsDisabledError, NotFoundTargetError, \
	NameCollisionExhaustedError
from asywoof.common.naming import sanitize_filename, create_exclusive
from asywoof.protocol.http import HTTPRequest, HTTPResponse
from asywoof.protocol.multipart import get_boundary, parse_multipart
from asywoof.archive.streamer import ArchiveStreamer
from asywoof.server.pages import upload_complete_page

class TransferWorker:
	"""
	Performs one transfer on one connection. Runs inside a spawned worker process,
	blocking I/O is fine here, the controller keeps accepting in the meantime.
	"""
	def __init__(self, target:TransferTarget, config:WoofConfig):
		self.target = target
		self.config = config

	def run(self, sock:socket.socket, request:HTTPRequest):
		sock.setblocking(True)
		rfile = sock.makefile('rb')
		wfile = sock.makefile('wb')
		try:
			if request.method == 'POST':
				self.handle_upload(request, rfile, wfile)
			else:
				self.serve(wfile)
			wfile.flush()
		finally:
			try:
				sock.shutdown(socket.SHUT_WR)
			except OSError:
				pass
			for f in (rfile, wfile):
				try:
					f.close()
				except OSError:
					pass
			sock.close()

	def serve(self, wfile):
		"""Sends the file or the archive of the directory"""
		if self.target is None:
			raise NotFoundTargetError(None, 'Nothing to serve, server is in upload mode')
		if os.path.exists(self.target.path) is False:
			raise NotFoundTargetError(self.target.path)

		size = self.target.get_size()
		response = HTTPResponse(
			200,
			content_type = self.target.content_type,
			content_length = size,
			headers = self.target.get_headers(),
		)
		wfile.write(response.head_to_bytes())

		if self.target.is_directory is True:
			streamer = ArchiveStreamer(self.target.path, self.target.compression, self.config.chunk_size)
			total = streamer.stream(wfile)
			logger.info('[WORKER] Archive of %s sent (%d bytes)' % (self.target.path, total))
		else:
			self.send_file(wfile, size)
		wfile.flush()

	def send_file(self, wfile, size:int):
		sent = 0
		next_milestone = 10
		with open(self.target.path, 'rb') as f:
			while True:
				chunk = f.read(self.config.chunk_size)
				if not chunk:
					break
				wfile.write(chunk)
				sent += len(chunk)
				if size:
					percent = sent * 100 // size
					if percent >= next_milestone:
						logger.info('[WORKER] %s: %d%% (%d/%d bytes)' % (self.target.get_basename(), percent, sent, size))
						next_milestone = (percent // 10 + 1) * 10
		logger.info('[WORKER] %s sent (%d bytes)' % (self.target.path, sent))
		return sent

	def handle_upload(self, request:HTTPRequest, rfile, wfile):
		try:
			response = self.process_upload(request, rfile)
		except HTTPError as e:
			logger.info('[UPLOAD] Rejected with %s: %s' % (e.status, e.message))
			response = HTTPResponse(e.status, e.reason, content_type = 'text/plain', body = '%s %s\n' % (e.status, e.message))
		response.write(wfile)

	def process_upload(self, request:HTTPRequest, rfile) -> HTTPResponse:
		"""Stores the uploaded file, raises HTTPError subclasses for anything the peer got wrong"""
		# drain the body first so the peer is never cut off mid-send
		body = request.read_body(rfile, self.config.chunk_size)
		if self.config.upload is False:
			raise UploadsDisabledError('Uploads are not enabled on this server')

		boundary = get_boundary(request.get_header('content-type'))
		if boundary is None:
			raise ProtocolError('No boundary found in multipart/form-data')
		form, err = parse_multipart(body, boundary)
		if err is not None:
			raise err

		part = form.get(UPLOAD_FIELD)
		# browsers send filename="" when no file was picked
		if part is None or part.is_file is False or part.filename == '':
			raise ForbiddenError('No upload provided')

		filename = sanitize_filename(part.filename)
		try:
			f, path = create_exclusive(self.config.upload_dir, filename)
		except (OSError, NameCollisionExhaustedError) as e:
			raise HTTPError('Failed to store %s: %s' % (filename, e)) from e
		with f:
			f.write(part.data)
		logger.info('[UPLOAD] Stored %s (%d bytes)' % (path, len(part.data)))
		return HTTPResponse(200, body = upload_complete_page(path, len(part.data)))
