from asywoof.common.exceptions import ProtocolError
from asywoof.protocol.multipart import get_boundary, parse_multipart, MultipartPart

from asywoof.test.helpers import multipart_body

def test_get_boundary():
	assert get_boundary('multipart/form-data; boundary=abc123') == 'abc123'
	assert get_boundary('multipart/form-data; boundary="a b;c"') == 'a b;c'
	assert get_boundary('multipart/form-data; BOUNDARY=xyz; charset=utf-8') == 'xyz'
	assert get_boundary('multipart/form-data') is None
	assert get_boundary(None) is None

def test_file_and_plain_parts():
	body = multipart_body('XyZ', [
		('comment', None, b'just text'),
		('upfile', 'a.txt', b'hello\r\nworld'),
	])
	form, err = parse_multipart(body, 'XyZ')
	assert err is None
	assert set(form.keys()) == {'comment', 'upfile'}
	assert form['comment'].is_file is False
	assert form['comment'].value == 'just text'
	assert form['upfile'].is_file is True
	assert form['upfile'].filename == 'a.txt'
	assert form['upfile'].content_type == 'text/plain'
	assert form['upfile'].data == b'hello\r\nworld'

def test_bare_lf_body():
	body = b'--b\nContent-Disposition: form-data; name="upfile"; filename="x.bin"\n\nDATA\n--b--\n'
	form, err = parse_multipart(body, 'b')
	assert err is None
	assert form['upfile'].data == b'DATA'
	assert form['upfile'].content_type == 'application/octet-stream'

def test_preamble_and_epilogue_ignored():
	body = b'preamble text\r\n' + multipart_body('bnd', [('f', None, b'v')]) + b'epilogue'
	form, err = parse_multipart(body, 'bnd')
	assert err is None
	assert list(form.keys()) == ['f']

def test_last_part_with_same_name_wins():
	body = multipart_body('q', [('f', None, b'first'), ('f', None, b'second')])
	form, _ = parse_multipart(body, 'q')
	assert form['f'].value == 'second'

def test_part_without_name_skipped():
	body = b'--q\r\nContent-Disposition: form-data\r\n\r\nnameless\r\n--q\r\nContent-Disposition: form-data; name="ok"\r\n\r\nyes\r\n--q--\r\n'
	form, err = parse_multipart(body, 'q')
	assert err is None
	assert list(form.keys()) == ['ok']

def test_filename_does_not_count_as_name():
	part, err = MultipartPart.from_bytes(b'Content-Disposition: form-data; filename="a.txt"\r\n\r\ndata')
	assert part is None
	assert isinstance(err, ProtocolError)

def test_missing_boundary():
	form, err = parse_multipart(b'whatever', None)
	assert form is None
	assert isinstance(err, ProtocolError)
	assert err.status == 400

def test_empty_body():
	form, err = parse_multipart(b'', 'abc')
	assert err is None
	assert form == {}
