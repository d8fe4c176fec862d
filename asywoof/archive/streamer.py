import io
import os
import tarfile
import zipfile

from asywoof import logger
from asywoof.common.constants import Compression, CHUNK_SIZE

TAR_STREAM_MODES = {
	Compression.NONE : 'w|',
	Compression.GZIP : 'w|gz',
	Compression.BZIP2 : 'w|bz2',
}

class ArchiveSink(io.RawIOBase):
	"""Unseekable writer around the output file object, counts what passes through"""
	def __init__(self, wfile):
		super().__init__()
		self.wfile = wfile
		self.written = 0

	def writable(self):
		return True

	def write(self, b):
		chunk = bytes(b)
		self.wfile.write(chunk)
		self.written += len(chunk)
		return len(chunk)

	def flush(self):
		if getattr(self.wfile, 'closed', False) is False:
			self.wfile.flush()

class ArchiveStreamer:
	def __init__(self, path:str, compression:Compression = Compression.GZIP, chunk_size:int = CHUNK_SIZE):
		self.path = os.path.abspath(path)
		self.compression = compression
		self.chunk_size = chunk_size
		self.rootname = os.path.basename(os.path.normpath(self.path))

	def walk(self, directory:str = None, arcdir:str = None):
		"""
		Yields (filesystem path, archive-relative path) for every regular file below the directory.
		Depth-first, entries of each directory in name order. Archive paths start with the
		directory's own base name.
		"""
		if directory is None:
			directory = self.path
			arcdir = self.rootname

		try:
			entries = sorted(os.scandir(directory), key = lambda e: e.name)
		except OSError as e:
			logger.warning('[ARCHIVE] Cannot list %s: %s' % (directory, e))
			return

		for entry in entries:
			arcname = arcdir + '/' + entry.name
			if entry.is_dir(follow_symlinks=False):
				yield from self.walk(entry.path, arcname)
			elif entry.is_file():
				yield entry.path, arcname

	def stream(self, wfile):
		"""Writes the archive to wfile incrementally, returns the number of bytes written"""
		sink = ArchiveSink(wfile)
		if self.compression == Compression.ZIP:
			self.write_zip(sink)
		else:
			self.write_tar(sink)
		sink.flush()
		logger.debug('[ARCHIVE] %s: %d bytes written' % (self.rootname, sink.written))
		return sink.written

	def write_tar(self, sink):
		# stream mode compresses on the fly, no full tar image is kept in memory
		with tarfile.open(fileobj = sink, mode = TAR_STREAM_MODES[self.compression], bufsize = self.chunk_size) as tar:
			for path, arcname in self.walk():
				try:
					with open(path, 'rb') as f:
						info = tar.gettarinfo(arcname = arcname, fileobj = f)
						tar.addfile(info, f)
				except OSError as e:
					logger.warning('[ARCHIVE] Skipping %s: %s' % (path, e))

	def write_zip(self, sink):
		with zipfile.ZipFile(sink, 'w', compression = zipfile.ZIP_DEFLATED, allowZip64 = True) as zf:
			for path, arcname in self.walk():
				try:
					zf.write(path, arcname = arcname)
				except OSError as e:
					logger.warning('[ARCHIVE] Skipping %s: %s' % (path, e))
