import os
import re
import tempfile

from asywoof import logger
from asywoof.common.constants import MAX_NAME_SUFFIX
from asywoof.common.exceptions import NameCollisionExhaustedError

DEFAULT_NAME = 'woof-upload'

unsafe_chars_re = re.compile(r'[^A-Za-z0-9_.\-]')
multi_dot_re = re.compile(r'\.\.+')

def sanitize_filename(filename:str, default:str = DEFAULT_NAME):
	"""
	Reduces a client supplied filename to something safe to create in the upload directory.
	Path components are dropped, anything outside [A-Za-z0-9_.-] becomes an underscore and
	dot runs collapse into one dot. Applying it twice gives the same result as applying it once.
	"""
	if not filename:
		return default

	# browsers on windows send the full local path
	safe_name = filename.replace('\\', '/')
	safe_name = safe_name.split('/')[-1]
	safe_name = unsafe_chars_re.sub('_', safe_name)

	if len(safe_name) > 255:
		name_part, ext_part = os.path.splitext(safe_name)
		safe_name = name_part[:250] + ext_part[:5]

	safe_name = multi_dot_re.sub('.', safe_name)
	safe_name = safe_name.strip('._')
	if safe_name == '':
		return default
	return safe_name

def create_exclusive(directory:str, filename:str, overwrite:bool = False, max_suffix:int = MAX_NAME_SUFFIX):
	"""
	Opens a new file for binary writing without clobbering anything that already exists.
	Tries filename, filename.1 ... filename.<max_suffix>, then falls back to a securely
	generated temporary name in the same directory.
	Returns (file object, path)
	"""
	directory = os.path.abspath(directory)
	basepath = os.path.join(directory, filename)

	if overwrite is True:
		return open(basepath, 'wb'), basepath

	candidates = [basepath] + ['%s.%d' % (basepath, i) for i in range(1, max_suffix+1)]
	for path in candidates:
		try:
			fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, 'O_BINARY', 0), 0o644)
		except FileExistsError:
			continue
		return os.fdopen(fd, 'wb'), path

	logger.debug('[NAMING] All suffixes taken for %s, using a temporary name' % basepath)
	try:
		fd, path = tempfile.mkstemp(prefix = filename + '.', dir = directory)
	except OSError as e:
		raise NameCollisionExhaustedError('Could not create any file for %s in %s: %s' % (filename, directory, e)) from e
	return os.fdopen(fd, 'wb'), path
