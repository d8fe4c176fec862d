import enum

DEFAULT_PORT = 8080
DEFAULT_COUNT = 1
CHUNK_SIZE = 8192
POLL_INTERVAL = 0.1
CLIENT_TIMEOUT = 10
MAX_HEAD_SIZE = 65536
UPLOAD_FIELD = 'upfile'
MAX_NAME_SUFFIX = 9

class Compression(enum.Enum):
	NONE = 'off'
	GZIP = 'gz'
	BZIP2 = 'bz2'
	ZIP = 'zip'

ARCHIVE_EXTENSIONS = {
	Compression.NONE : '.tar',
	Compression.GZIP : '.tar.gz',
	Compression.BZIP2 : '.tar.bz2',
	Compression.ZIP : '.zip',
}

ARCHIVE_CONTENT_TYPES = {
	Compression.NONE : 'application/x-tar',
	Compression.GZIP : 'application/gzip',
	Compression.BZIP2 : 'application/x-bzip2',
	Compression.ZIP : 'application/zip',
}

# values accepted for "compressed" in the woofrc files
COMPRESSION_ALIASES = {
	'gz' : Compression.GZIP,
	'true' : Compression.GZIP,
	'bz' : Compression.BZIP2,
	'bz2' : Compression.BZIP2,
	'zip' : Compression.ZIP,
	'off' : Compression.NONE,
	'false' : Compression.NONE,
}
