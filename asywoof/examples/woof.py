import os
import sys
import socket
import asyncio
import logging
import argparse

from asywoof import logger
from asywoof._version import __banner__
from asywoof.common.config import WoofConfig
from asywoof.common.constants import Compression
from asywoof.common.target import TransferTarget
from asywoof.common.exceptions import WoofError
from asywoof.server.controller import TransferServer
from asywoof.client import WoofClient, http_url_pattern

WOOFRC_HELP = '''
Defaults can be set in /etc/woofrc and ~/.woofrc (INI-style, the file in
the home directory takes precedence). Compression methods are "off", "gz",
"bz2" or "zip". Sample file:

    [main]
    port = 8008
    count = 2
    ip = 127.0.0.1
    compressed = gz
'''

def guess_local_ip():
	"""
	Address of the default route, only used to print a reachable URL.
	A UDP connect to the IANA TEST-NETs sends nothing, but picks the outgoing interface.
	"""
	candidates = []
	for test_ip in ('192.0.2.0', '198.51.100.0', '203.0.113.0'):
		try:
			with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
				s.connect((test_ip, 80))
				ip_addr = s.getsockname()[0]
		except OSError:
			continue
		if ip_addr in candidates:
			return ip_addr
		candidates.append(ip_addr)
	if len(candidates) > 0:
		return candidates[0]
	return '127.0.0.1'

def prompt_negotiator(suggested_name:str, size:int = None):
	"""Asks the operator for the target filename and whether an existing file may be replaced"""
	if size is not None:
		print('Server offers %s (%d bytes)' % (suggested_name, size))
	try:
		name = input('Enter target filename [%s]: ' % suggested_name).strip()
	except EOFError:
		name = ''
	if name == '':
		name = suggested_name

	overwrite = False
	if os.path.exists(name) is True:
		try:
			answer = input('File exists. Overwrite (y/n)? ').strip().lower()
		except EOFError:
			answer = ''
		overwrite = answer in ('y', 'yes')
	return name, overwrite

def get_parser(config:WoofConfig):
	parser = argparse.ArgumentParser(
		description = 'Serves a single file or directory <count> times via http, or downloads from a woof URL',
		epilog = WOOFRC_HELP,
		formatter_class = argparse.RawDescriptionHelpFormatter,
	)
	parser.add_argument('-i', '--ip', default = config.ip, help='IP address to listen on (default: all)')
	parser.add_argument('-p', '--port', type = int, default = config.port, help='Listen port (default: %s)' % config.port)
	parser.add_argument('-c', '--count', type = int, default = config.count, help='Number of downloads before the server stops (default: %s)' % config.count)
	compression = parser.add_mutually_exclusive_group()
	compression.add_argument('-z', '--gzip', dest = 'compression', action = 'store_const', const = Compression.GZIP, help='Serve directories as .tar.gz')
	compression.add_argument('-j', '--bzip2', dest = 'compression', action = 'store_const', const = Compression.BZIP2, help='Serve directories as .tar.bz2')
	compression.add_argument('-Z', '--zip', dest = 'compression', action = 'store_const', const = Compression.ZIP, help='Serve directories as .zip')
	compression.add_argument('-u', '--uncompressed', dest = 'compression', action = 'store_const', const = Compression.NONE, help='Serve directories as plain .tar')
	parser.add_argument('-U', '--upload', action = 'store_true', help='Provide an upload form instead of serving a file')
	parser.add_argument('--upload-dir', default = None, help='Directory uploaded files are stored in (default: current directory)')
	parser.add_argument('-s', '--self', dest = 'serve_self', action = 'store_true', help='Serve this program itself')
	parser.add_argument('-q', '--quiet', action = 'store_true', help='Only log warnings and errors, no banner')
	parser.add_argument('-v', '--verbose', action = 'count', default = 0, help='Verbosity')
	parser.add_argument('target', nargs = '?', help='File or directory to serve, or an http(s) URL to download')
	parser.set_defaults(compression = config.compression)
	return parser

async def run_client(url:str, quiet:bool):
	client = WoofClient(url, negotiator = prompt_negotiator, progress = not quiet)
	result = await client.download()
	print('downloaded %s' % result)
	return result

async def run_server(config:WoofConfig, target:TransferTarget):
	server = TransferServer(config, target)
	server.bind()
	if config.quiet is False:
		host = config.ip or guess_local_ip()
		print('Now serving on %s' % server.get_url(host))
	report = await server.serve()
	if config.quiet is False:
		print(str(report))
	return report

def main():
	config = WoofConfig.from_files()
	parser = get_parser(config)
	args = parser.parse_args()

	if args.verbose >= 1:
		logger.setLevel(logging.DEBUG)
	elif args.quiet is True:
		logger.setLevel(logging.WARNING)

	if args.quiet is False:
		print(__banner__)

	path = args.target
	if args.serve_self is True:
		path = os.path.abspath(__file__)

	if path is not None and args.upload is False and http_url_pattern.match(path) is not None:
		try:
			asyncio.run(run_client(path, args.quiet))
		except WoofError as e:
			print('Download failed: %s' % e, file = sys.stderr)
			sys.exit(1)
		except KeyboardInterrupt:
			print('')
			sys.exit(1)
		return

	config.ip = args.ip
	config.port = args.port
	config.count = args.count
	config.compression = args.compression
	config.upload = args.upload
	config.quiet = args.quiet
	if args.upload_dir is not None:
		config.upload_dir = os.path.abspath(args.upload_dir)

	target = None
	try:
		config.validate(path)
		if config.upload is False:
			target = TransferTarget.from_path(path, config.compression)
	except (ValueError, WoofError) as e:
		parser.print_usage(sys.stderr)
		print('%s: error: %s' % (parser.prog, e), file = sys.stderr)
		sys.exit(1)

	try:
		asyncio.run(run_server(config, target))
	except OSError as e:
		print('Could not start the server: %s' % e, file = sys.stderr)
		sys.exit(1)

if __name__ == '__main__':
	main()
