import re
import asyncio
import datetime
import email.utils
import http
import urllib.parse
from typing import List, Tuple

from asywoof._version import __version__
from asywoof.common.constants import CHUNK_SIZE, MAX_HEAD_SIZE
from asywoof.common.exceptions import ProtocolError

SERVER_IDENT = 'asywoof/%s' % __version__

request_line_re = re.compile(r'^(GET|HEAD|POST) ([^ ]+) HTTP/(\d\.\d)$')
header_line_re = re.compile(r'^([^:]+):\s*(.*)$')

def split_head(data:bytes):
	"""
	Splits data on the first blank line, accepting both CRLF and bare LF line endings.
	Returns (head, rest) or (None, data) if no blank line was found yet.
	"""
	positions = []
	for sep in (b'\r\n\r\n', b'\n\n', b'\r\n\n', b'\n\r\n'):
		pos = data.find(sep)
		if pos != -1:
			positions.append((pos, len(sep)))
	if len(positions) == 0:
		return None, data
	pos, seplen = min(positions)
	return data[:pos], data[pos+seplen:]

def parse_header_lines(head:bytes):
	"""Lower-cased header mapping, first occurrence of a key wins"""
	headers = {}
	for line in head.split(b'\n'):
		line = line.rstrip(b'\r').decode('latin-1')
		if line.strip() == '':
			continue
		m = header_line_re.match(line)
		if m is None:
			continue
		key = m.group(1).strip().lower()
		if key not in headers:
			headers[key] = m.group(2).strip()
	return headers

def format_date_time(dt = None):
	"""Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
	if dt is None:
		dt = datetime.datetime.now(datetime.timezone.utc)
	return email.utils.format_datetime(dt, usegmt=True)

def basic_headers():
	return [
		('Date', format_date_time()),
		('Server', SERVER_IDENT),
	]

class HTTPRequest:
	def __init__(self):
		self.method = None
		self.uri = None
		self.version = None
		self.headers = {}
		self.data = None
		self.pending = b'' #body bytes that arrived together with the head

	def to_bytes(self):
		t = '%s %s HTTP/%s\r\n' % (self.method, self.uri, self.version)
		for x in self.headers:
			t += '%s: %s\r\n' % (x, self.headers[x])
		t += '\r\n'
		t = t.encode('latin-1')
		if self.data is not None:
			t += self.data
		return t

	def get_header(self, name:str, default = None):
		return self.headers.get(name.lower(), default)

	def get_content_length(self):
		return int(self.headers.get('content-length', 0))

	def get_path(self):
		"""Decoded path component of the request target"""
		return urllib.parse.unquote(urllib.parse.urlsplit(self.uri).path)

	@staticmethod
	def from_bytes(data:bytes):
		"""
		Parses a request head (and whatever body bytes follow it).
		Returns (request, None) or (None, ProtocolError) for malformed input.
		"""
		try:
			head, rest = split_head(data)
			if head is None:
				head, rest = data, b''
			lines = head.split(b'\n')
			request_line = lines[0].rstrip(b'\r').decode('latin-1')
			m = request_line_re.match(request_line)
			if m is None:
				raise ProtocolError('Malformed request line: %r' % request_line[:100])

			req = HTTPRequest()
			req.method = m.group(1)
			req.uri = m.group(2)
			req.version = m.group(3)
			req.headers = parse_header_lines(b'\n'.join(lines[1:]))
			if 'content-length' in req.headers:
				if req.headers['content-length'].isdigit() is False:
					raise ProtocolError('Invalid Content-Length: %r' % req.headers['content-length'])
			req.pending = rest
			if req.method == 'POST':
				length = req.get_content_length()
				if len(req.pending) >= length:
					req.data = req.pending[:length]
			return req, None
		except ProtocolError as e:
			return None, e
		except Exception as e:
			return None, ProtocolError(str(e))

	@staticmethod
	async def from_socket(sock, loop = None, timeout = None, max_size:int = MAX_HEAD_SIZE):
		"""Reads a request head from a non-blocking socket. Body bytes stay in request.pending"""
		if loop is None:
			loop = asyncio.get_running_loop()

		async def read_head():
			buffer = b''
			while True:
				data = await loop.sock_recv(sock, 4096)
				if data == b'':
					raise ProtocolError('Connection closed before the request head was complete')
				buffer += data
				head, _ = split_head(buffer)
				if head is not None:
					return buffer
				if len(buffer) > max_size:
					raise ProtocolError('Request head too large')
		try:
			buffer = await asyncio.wait_for(read_head(), timeout = timeout)
		except ProtocolError as e:
			return None, e
		except asyncio.TimeoutError:
			return None, ProtocolError('Timeout reading the request head')
		except OSError as e:
			return None, ProtocolError('Error reading the request head: %s' % e)
		return HTTPRequest.from_bytes(buffer)

	def read_body(self, rfile = None, chunk_size:int = CHUNK_SIZE):
		"""
		Reads exactly Content-Length body bytes for a POST, in bounded chunks.
		Stops early only if the connection is closed or errors out.
		"""
		if self.method != 'POST':
			return None
		if self.data is not None:
			return self.data

		length = self.get_content_length()
		chunks = [self.pending[:length]]
		remaining = length - len(chunks[0])
		while remaining > 0 and rfile is not None:
			try:
				chunk = rfile.read(min(chunk_size, remaining))
			except OSError:
				break
			if not chunk:
				break
			chunks.append(chunk)
			remaining -= len(chunk)

		self.data = b''.join(chunks)
		return self.data

class HTTPResponse:
	"""
	HTTP/1.0 response. body is either bytes or a callable that gets the
	output file object and streams into it (content_length is left out then).
	"""
	def __init__(self, status:int, reason:str = None, content_type:str = 'text/html', content_length:int = None, headers:List[Tuple[str,str]] = None, body = None):
		self.status = status
		self.reason = reason
		self.content_type = content_type
		self.content_length = content_length
		self.headers = headers
		self.body = body
		if self.reason is None:
			try:
				self.reason = http.HTTPStatus(status).phrase
			except ValueError:
				self.reason = 'Unknown'
		if self.headers is None:
			self.headers = []
		if isinstance(self.body, str):
			self.body = self.body.encode('utf-8')
		if self.content_length is None and isinstance(self.body, bytes):
			self.content_length = len(self.body)

	def head_to_bytes(self):
		t = 'HTTP/1.0 %s %s\r\n' % (self.status, self.reason)
		t += 'Content-Type: %s\r\n' % self.content_type
		if self.content_length is not None:
			t += 'Content-Length: %s\r\n' % self.content_length
		for key, value in basic_headers() + self.headers:
			t += '%s: %s\r\n' % (key, value)
		t += '\r\n'
		return t.encode('utf-8')

	def to_bytes(self, include_body:bool = True):
		data = self.head_to_bytes()
		if include_body is True and isinstance(self.body, bytes):
			data += self.body
		return data

	def write(self, wfile, include_body:bool = True):
		wfile.write(self.head_to_bytes())
		if include_body is True and self.body is not None:
			if callable(self.body):
				self.body(wfile)
			else:
				wfile.write(self.body)
		wfile.flush()

def write_response(wfile, status:int, reason:str, content_type:str, content_length:int = None, extra_headers:List[Tuple[str,str]] = None, body = None, include_body:bool = True):
	response = HTTPResponse(status, reason, content_type, content_length, extra_headers, body)
	response.write(wfile, include_body = include_body)
	return response
