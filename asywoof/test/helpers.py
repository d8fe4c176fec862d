import asyncio

from asywoof.common.config import WoofConfig
from asywoof.server.controller import TransferServer

def make_config(tmp_path, **kwargs):
	params = {
		'ip' : '127.0.0.1',
		'port' : 0,
		'count' : 1,
		'upload_dir' : str(tmp_path),
		'poll_interval' : 0.02,
		'client_timeout' : 5,
	}
	params.update(kwargs)
	return WoofConfig(**params)

def parse_response(data:bytes):
	"""(status, lower-cased header dict, body) out of a raw HTTP/1.0 response"""
	head, _, body = data.partition(b'\r\n\r\n')
	lines = head.decode('latin-1').split('\r\n')
	status = int(lines[0].split(' ')[1])
	headers = {}
	for line in lines[1:]:
		key, _, value = line.partition(':')
		headers[key.strip().lower()] = value.strip()
	return status, headers, body

async def http_exchange(port:int, raw:bytes, timeout:int = 10):
	reader, writer = await asyncio.open_connection('127.0.0.1', port)
	try:
		writer.write(raw)
		await writer.drain()
		data = await asyncio.wait_for(reader.read(), timeout = timeout)
	finally:
		writer.close()
	return data

async def http_request(port:int, method:str, path:str, headers:dict = None, body:bytes = b''):
	raw = '%s %s HTTP/1.0\r\n' % (method, path)
	for key, value in (headers or {}).items():
		raw += '%s: %s\r\n' % (key, value)
	raw += '\r\n'
	data = await http_exchange(port, raw.encode('latin-1') + body)
	return parse_response(data)

def multipart_body(boundary:str, fields):
	"""fields: list of (name, filename or None, content bytes)"""
	body = b''
	for name, filename, content in fields:
		body += b'--' + boundary.encode() + b'\r\n'
		if filename is None:
			body += b'Content-Disposition: form-data; name="%s"\r\n\r\n' % name.encode()
		else:
			body += b'Content-Disposition: form-data; name="%s"; filename="%s"\r\n' % (name.encode(), filename.encode())
			body += b'Content-Type: text/plain\r\n\r\n'
		body += content + b'\r\n'
	body += b'--' + boundary.encode() + b'--\r\n'
	return body

def run_with_server(config, target, scenario, timeout:int = 20):
	"""
	Starts a TransferServer on an ephemeral port, runs scenario(server) against it and
	waits for the server to stop. Returns (scenario result, server report, server).
	"""
	async def runner():
		server = TransferServer(config, target)
		server.bind()
		serve_task = asyncio.create_task(server.serve())
		try:
			result = await scenario(server)
		except BaseException:
			server.request_shutdown()
			await asyncio.wait_for(serve_task, timeout = timeout)
			raise
		report = await asyncio.wait_for(serve_task, timeout = timeout)
		return result, report, server
	return asyncio.run(runner())


async def wait_until(predicate, timeout:float = 10):
	"""Polls predicate() until it holds, returns its last result"""
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while predicate() is False and loop.time() < deadline:
		await asyncio.sleep(0.01)
	return predicate()

async def open_stalled_upload(port:int, announced:int = 1000):
	"""Starts a POST whose body never arrives in full, the worker blocks reading it"""
	reader, writer = await asyncio.open_connection('127.0.0.1', port)
	head = 'POST / HTTP/1.0\r\nContent-Type: multipart/form-data; boundary=abc\r\nContent-Length: %d\r\n\r\n' % announced
	writer.write(head.encode() + b'--abc\r\n')
	await writer.drain()
	return reader, writer
