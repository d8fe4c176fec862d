import os
import enum
import mimetypes
import urllib.parse
from typing import List, Tuple

from asywoof.common.constants import Compression, ARCHIVE_EXTENSIONS, ARCHIVE_CONTENT_TYPES
from asywoof.common.exceptions import TargetError, NotFoundTargetError

class TargetKind(enum.Enum):
	FILE = 1
	DIRECTORY = 2

class TransferTarget:
	"""The single entity being served. Set once at startup, never modified afterwards."""
	def __init__(self, path:str, kind:TargetKind, compression:Compression = Compression.GZIP):
		self.path = path
		self.kind = kind
		self.compression = compression
		self.archive_ext = ''
		self.content_type = 'application/octet-stream'

		if self.kind == TargetKind.DIRECTORY:
			self.archive_ext = ARCHIVE_EXTENSIONS[self.compression]
			self.content_type = ARCHIVE_CONTENT_TYPES[self.compression]
		else:
			guessed, _ = mimetypes.guess_type(self.path)
			if guessed is not None:
				self.content_type = guessed

	@staticmethod
	def from_path(path:str, compression:Compression = Compression.GZIP):
		if path is None or path == '':
			raise TargetError('Can only serve single files/directories.')
		path = os.path.abspath(path)
		if os.path.exists(path) is False:
			raise TargetError('%s: No such file or directory' % path)
		if os.path.isfile(path) is True:
			return TransferTarget(path, TargetKind.FILE, compression)
		if os.path.isdir(path) is True:
			return TransferTarget(path, TargetKind.DIRECTORY, compression)
		raise TargetError('%s: Neither file nor directory' % path)

	@property
	def is_directory(self):
		return self.kind == TargetKind.DIRECTORY

	def get_basename(self):
		return os.path.basename(os.path.normpath(self.path))

	def get_download_name(self):
		return self.get_basename() + self.archive_ext

	def get_canonical_path(self):
		return '/' + urllib.parse.quote(self.get_basename(), safe='') + self.archive_ext

	def get_size(self):
		"""Size in bytes for regular files, None for directories (archive size is unknown upfront)"""
		if self.kind == TargetKind.FILE:
			try:
				return os.path.getsize(self.path)
			except OSError:
				raise NotFoundTargetError(self.path)
		if os.path.isdir(self.path) is False:
			raise NotFoundTargetError(self.path)
		return None

	def get_headers(self) -> List[Tuple[str, str]]:
		# percent-encoded, so control characters in the name never reach the header block
		name = urllib.parse.quote(self.get_download_name(), safe='')
		return [
			('Content-Disposition', 'attachment; filename="%s"; filename*=UTF-8\'\'%s' % (name, name)),
		]

	def __repr__(self):
		return 'TransferTarget(%r, %s, %s)' % (self.path, self.kind.name, self.compression.name)
