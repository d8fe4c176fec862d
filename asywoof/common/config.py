import os
import configparser
from typing import List

from asywoof import logger
from asywoof.common.constants import DEFAULT_PORT, DEFAULT_COUNT, CHUNK_SIZE, POLL_INTERVAL, \
	CLIENT_TIMEOUT, Compression, COMPRESSION_ALIASES

def get_config_files():
	files = ['/etc/woofrc']
	home = os.environ.get('HOME')
	if home:
		files.append(os.path.join(home, '.woofrc'))
	return files

class WoofConfig:
	def __init__(self, ip:str = '', port:int = DEFAULT_PORT, count:int = DEFAULT_COUNT, compression:Compression = Compression.GZIP, upload:bool = False, upload_dir:str = None, quiet:bool = False, chunk_size:int = CHUNK_SIZE, poll_interval:float = POLL_INTERVAL, client_timeout:int = CLIENT_TIMEOUT):
		self.ip = ip
		self.port = port
		self.count = count
		self.compression = compression
		self.upload = upload
		self.upload_dir = upload_dir
		self.quiet = quiet
		self.chunk_size = chunk_size
		self.poll_interval = poll_interval
		self.client_timeout = client_timeout
		if self.upload_dir is None:
			self.upload_dir = os.getcwd()

	@staticmethod
	def from_files(filenames:List[str] = None):
		"""Defaults from INI-style woofrc files, later files take precedence"""
		config = WoofConfig()
		if filenames is None:
			filenames = get_config_files()
		for filename in filenames:
			if os.path.isfile(filename) is False:
				continue
			config.update_from_file(filename)
		return config

	def update_from_file(self, filename:str):
		parser = configparser.ConfigParser()
		try:
			parser.read(filename)
		except configparser.Error as e:
			logger.warning('[CONFIG] Ignoring unparsable config file %s: %s' % (filename, e))
			return
		if parser.has_section('main') is False:
			return

		section = parser['main']
		if section.get('port'):
			self.port = section.getint('port')
		if section.get('count'):
			self.count = section.getint('count')
		if section.get('ip'):
			self.ip = section.get('ip')
		if section.get('compressed'):
			value = section.get('compressed').strip().lower()
			if value in COMPRESSION_ALIASES:
				self.compression = COMPRESSION_ALIASES[value]
			else:
				logger.warning('[CONFIG] Unknown compression "%s" in %s, ignoring' % (value, filename))

	def validate(self, path:str = None):
		if self.port < 0 or self.port > 65535:
			raise ValueError('invalid port number: %s' % self.port)
		if self.count <= 0:
			raise ValueError('invalid download count: %s. Please specify an integer >= 1.' % self.count)
		if self.upload is True and path:
			raise ValueError('Conflicting usage: simultaneous up- and download not supported.')
		if self.upload is True and os.path.isdir(self.upload_dir) is False:
			raise ValueError('upload directory does not exist: %s' % self.upload_dir)

	def __repr__(self):
		return 'WoofConfig(ip=%r, port=%s, count=%s, compression=%s, upload=%s)' % \
			(self.ip, self.port, self.count, self.compression.name, self.upload)
