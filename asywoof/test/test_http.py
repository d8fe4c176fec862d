import io
import socket
import asyncio

import pytest

from asywoof.common.exceptions import ProtocolError
from asywoof.protocol.http import HTTPRequest, HTTPResponse, split_head, parse_header_lines, write_response

@pytest.mark.parametrize('method', ['GET', 'HEAD', 'POST'])
def test_request_line_fields(method):
	req, err = HTTPRequest.from_bytes(('%s /some%%20file.txt HTTP/1.1\r\nHost: x\r\n\r\n' % method).encode())
	assert err is None
	assert req.method == method
	assert req.uri == '/some%20file.txt'
	assert req.version == '1.1'
	assert req.get_path() == '/some file.txt'

@pytest.mark.parametrize('line', [
	b'PUT / HTTP/1.0',
	b'get / HTTP/1.0',
	b'GET /',
	b'GET / HTTP/1.0 extra',
	b'GET  / HTTP/1.0',
	b'GET / FTP/1.0',
	b'',
	b'\x00\x01\x02',
])
def test_malformed_request_line(line):
	req, err = HTTPRequest.from_bytes(line + b'\r\n\r\n')
	assert req is None
	assert isinstance(err, ProtocolError)
	assert err.status == 400

def test_headers_case_insensitive_first_wins():
	req, err = HTTPRequest.from_bytes(b'GET / HTTP/1.0\r\nX-Thing: one\r\nx-thing: two\r\nCONTENT-length: 0\r\n\r\n')
	assert err is None
	assert req.get_header('x-thing') == 'one'
	assert req.get_header('X-THING') == 'one'
	assert req.get_content_length() == 0

def test_bare_lf_line_endings():
	req, err = HTTPRequest.from_bytes(b'POST /up HTTP/1.0\nContent-Length: 5\n\nhello')
	assert err is None
	assert req.method == 'POST'
	assert req.data == b'hello'

def test_invalid_content_length():
	req, err = HTTPRequest.from_bytes(b'POST / HTTP/1.0\r\nContent-Length: -5\r\n\r\n')
	assert req is None
	assert isinstance(err, ProtocolError)

def test_split_head():
	assert split_head(b'GET / HTTP/1.0\r\n') == (None, b'GET / HTTP/1.0\r\n')
	assert split_head(b'a\r\n\r\nbody') == (b'a', b'body')
	assert split_head(b'a\n\nb\r\n\r\nc') == (b'a', b'b\r\n\r\nc')

def test_parse_header_lines_skips_garbage():
	headers = parse_header_lines(b'no colon here\r\nKey:  value  \r\n')
	assert headers == {'key' : 'value'}

def test_read_body_bounded_by_content_length():
	req, err = HTTPRequest.from_bytes(b'POST / HTTP/1.0\r\nContent-Length: 10\r\n\r\n0123')
	assert err is None
	assert req.data is None
	rfile = io.BytesIO(b'456789trailing garbage')
	assert req.read_body(rfile, chunk_size = 2) == b'0123456789'
	assert rfile.read() == b'trailing garbage'

def test_read_body_stops_on_eof():
	req, _ = HTTPRequest.from_bytes(b'POST / HTTP/1.0\r\nContent-Length: 100\r\n\r\nabc')
	assert req.read_body(io.BytesIO(b'def')) == b'abcdef'

def test_read_body_ignored_for_get():
	req, _ = HTTPRequest.from_bytes(b'GET / HTTP/1.0\r\nContent-Length: 3\r\n\r\nabc')
	assert req.read_body(io.BytesIO(b'')) is None

def test_from_socket():
	async def run():
		a, b = socket.socketpair()
		a.setblocking(False)
		try:
			b.sendall(b'GET /x HTTP/1.0\r\n')
			b.sendall(b'Host: y\r\n\r\n')
			return await HTTPRequest.from_socket(a, timeout = 5)
		finally:
			a.close()
			b.close()
	req, err = asyncio.run(run())
	assert err is None
	assert req.uri == '/x'
	assert req.get_header('host') == 'y'

def test_from_socket_closed_early():
	async def run():
		a, b = socket.socketpair()
		a.setblocking(False)
		try:
			b.sendall(b'GET /x HTTP/1.0\r\n')
			b.close()
			return await HTTPRequest.from_socket(a, timeout = 5)
		finally:
			a.close()
	req, err = asyncio.run(run())
	assert req is None
	assert isinstance(err, ProtocolError)

def test_response_head():
	response = HTTPResponse(200, content_type = 'text/plain', body = b'hello', headers = [('X-A', 'b')])
	data = response.to_bytes()
	head, _, body = data.partition(b'\r\n\r\n')
	lines = head.split(b'\r\n')
	assert lines[0] == b'HTTP/1.0 200 OK'
	assert b'Content-Type: text/plain' in lines
	assert b'Content-Length: 5' in lines
	assert b'X-A: b' in lines
	assert any(line.startswith(b'Date: ') for line in lines)
	assert body == b'hello'

def test_response_without_length():
	head = HTTPResponse(200, content_type = 'application/gzip').head_to_bytes()
	assert b'Content-Length' not in head

def test_response_head_only():
	data = HTTPResponse(302, headers = [('Location', '/a')], body = 'moved').to_bytes(include_body = False)
	assert data.startswith(b'HTTP/1.0 302 Found\r\n')
	assert data.endswith(b'\r\n\r\n')
	assert b'Content-Length: 5' in data

def test_write_response_streams_callable():
	def body(wfile):
		for i in range(3):
			wfile.write(b'%d' % i)
	out = io.BytesIO()
	write_response(out, 200, 'OK', 'application/octet-stream', body = body)
	assert out.getvalue().endswith(b'\r\n\r\n012')
	assert b'Content-Length' not in out.getvalue()

	out = io.BytesIO()
	write_response(out, 200, 'OK', 'text/plain', body = b'abc', include_body = False)
	assert out.getvalue().endswith(b'\r\n\r\n')

def test_request_to_bytes_reparses():
	req, _ = HTTPRequest.from_bytes(b'POST /up HTTP/1.0\r\nContent-Type: text/plain\r\nContent-Length: 3\r\n\r\nabc')
	again, err = HTTPRequest.from_bytes(req.to_bytes())
	assert err is None
	assert again.uri == '/up'
	assert again.get_header('content-type') == 'text/plain'
	assert again.data == b'abc'
