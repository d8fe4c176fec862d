import pytest

from asywoof.common.config import WoofConfig
from asywoof.common.constants import Compression

def test_defaults(tmp_path):
	config = WoofConfig.from_files([str(tmp_path / 'missing')])
	assert config.port == 8080
	assert config.count == 1
	assert config.ip == ''
	assert config.compression == Compression.GZIP
	assert config.upload is False

def test_later_file_wins(tmp_path):
	system = tmp_path / 'woofrc'
	system.write_text('[main]\nport = 8008\ncount = 2\ncompressed = bz2\n')
	home = tmp_path / '.woofrc'
	home.write_text('[main]\nport = 9000\nip = 127.0.0.1\n')

	config = WoofConfig.from_files([str(system), str(home)])
	assert config.port == 9000
	assert config.count == 2
	assert config.ip == '127.0.0.1'
	assert config.compression == Compression.BZIP2

@pytest.mark.parametrize('value, expected', [
	('gz', Compression.GZIP),
	('true', Compression.GZIP),
	('bz', Compression.BZIP2),
	('zip', Compression.ZIP),
	('off', Compression.NONE),
	('false', Compression.NONE),
	('lzma', Compression.GZIP),
])
def test_compression_values(tmp_path, value, expected):
	rc = tmp_path / 'woofrc'
	rc.write_text('[main]\ncompressed = %s\n' % value)
	assert WoofConfig.from_files([str(rc)]).compression == expected

def test_unparsable_file_ignored(tmp_path):
	rc = tmp_path / 'woofrc'
	rc.write_text('this is not an ini file\n')
	assert WoofConfig.from_files([str(rc)]).port == 8080

@pytest.mark.parametrize('kwargs, path', [
	({'port' : 70000}, 'x'),
	({'count' : 0}, 'x'),
	({'upload' : True}, 'x'),
])
def test_validate_rejects(tmp_path, kwargs, path):
	config = WoofConfig(upload_dir = str(tmp_path), **kwargs)
	with pytest.raises(ValueError):
		config.validate(path)

def test_validate_upload_dir(tmp_path):
	config = WoofConfig(upload = True, upload_dir = str(tmp_path / 'nope'))
	with pytest.raises(ValueError):
		config.validate()
	WoofConfig(upload = True, upload_dir = str(tmp_path)).validate()
