import os

import pytest

@pytest.fixture
def sample_bytes():
	return bytes((i * 7) % 256 for i in range(10000))

@pytest.fixture
def served_file(tmp_path, sample_bytes):
	path = tmp_path / 'serve' / 'data.bin'
	path.parent.mkdir()
	path.write_bytes(sample_bytes)
	return path

@pytest.fixture
def served_dir(tmp_path):
	root = tmp_path / 'serve' / 'stuff'
	(root / 'sub' / 'deeper').mkdir(parents=True)
	(root / 'b.txt').write_bytes(b'bee')
	(root / 'a.txt').write_bytes(b'ay')
	(root / 'sub' / 'c.bin').write_bytes(os.urandom(3000))
	(root / 'sub' / 'deeper' / 'd.txt').write_bytes(b'dee' * 100)
	(root / 'empty').mkdir()
	return root
