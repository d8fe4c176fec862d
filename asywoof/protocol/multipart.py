import re
from typing import Dict

from asywoof import logger
from asywoof.common.exceptions import ProtocolError
from asywoof.protocol.http import split_head, parse_header_lines

boundary_re = re.compile(r'boundary=(?:"([^"]+)"|([^;\s]+))', re.IGNORECASE)
name_re = re.compile(r'(?:^|;)\s*name=(?:"([^"]*)"|([^;\s]+))', re.IGNORECASE)
filename_re = re.compile(r'(?:^|;)\s*filename=(?:"([^"]*)"|([^;\s]+))', re.IGNORECASE)

def get_boundary(content_type:str):
	"""Boundary token from a multipart/form-data Content-Type value, None if absent"""
	if not content_type:
		return None
	m = boundary_re.search(content_type)
	if m is None:
		return None
	return m.group(1) if m.group(1) is not None else m.group(2)

def _disposition_param(regex, disposition:str):
	m = regex.search(disposition)
	if m is None:
		return None
	return m.group(1) if m.group(1) is not None else m.group(2)

class MultipartPart:
	def __init__(self, name:str, filename:str = None, content_type:str = None, data:bytes = b''):
		self.name = name
		self.filename = filename
		self.content_type = content_type
		self.data = data

	@property
	def is_file(self):
		return self.filename is not None

	@property
	def value(self):
		return self.data.decode('utf-8', errors='replace')

	@staticmethod
	def from_bytes(raw:bytes):
		"""Returns (part, None) or (None, ProtocolError) if the part has no field name"""
		if raw.startswith(b'\r\n') or raw.startswith(b'\n'):
			#part without any headers
			head, body = b'', raw.split(b'\n', 1)[1]
		else:
			head, body = split_head(raw)
			if head is None:
				head, body = raw, b''

		headers = parse_header_lines(head)
		disposition = headers.get('content-disposition', '')
		name = _disposition_param(name_re, disposition)
		if name is None:
			return None, ProtocolError('Multipart part without a field name')

		filename = _disposition_param(filename_re, disposition)
		content_type = headers.get('content-type')
		if filename is not None and content_type is None:
			content_type = 'application/octet-stream'
		return MultipartPart(name, filename, content_type, body), None

	def __repr__(self):
		return 'MultipartPart(name=%r, filename=%r, content_type=%r, size=%d)' % \
			(self.name, self.filename, self.content_type, len(self.data))

def parse_multipart(body:bytes, boundary:str):
	"""
	Splits a multipart/form-data body into parts keyed by field name (last one wins).
	Returns (form, None) or (None, ProtocolError).
	"""
	if not boundary:
		return None, ProtocolError('No boundary found in multipart/form-data')
	if body is None:
		body = b''

	# the delimiter is CRLF--boundary, except for the very first one
	delimiter_re = re.compile(b'(?:^|\\r?\\n)--' + re.escape(boundary.encode('latin-1')))
	pieces = delimiter_re.split(body)

	form:Dict[str, MultipartPart] = {}
	for piece in pieces[1:]:
		if piece.startswith(b'--'):
			break
		# drop the remainder of the delimiter line (transport padding + line ending)
		if b'\n' not in piece:
			continue
		piece = piece.split(b'\n', 1)[1]
		if piece.strip() == b'':
			continue

		part, err = MultipartPart.from_bytes(piece)
		if err is not None:
			logger.debug('[MULTIPART] Skipping part: %s' % err)
			continue
		form[part.name] = part

	return form, None
