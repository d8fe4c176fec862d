import html

UPLOAD_FORM = '''<html>
  <head><title>Woof Upload</title></head>
  <body>
    <h1>Woof Upload</h1>
    <form name="upload" method="POST" enctype="multipart/form-data">
      <p><input type="file" name="upfile" /></p>
      <p><input type="submit" value="Upload!" /></p>
    </form>
  </body>
</html>
'''

def redirect_page(location:str):
	return '''<html>
  <head><title>302 Found</title></head>
  <body>302 Found <a href="%s">here</a>.</body>
</html>
''' % html.escape(location, quote=True)

def upload_complete_page(path:str, size:int):
	return '''<html>
  <head><title>Woof Upload</title></head>
  <body>
    <h1>Woof Upload complete</h1>
    <p>Stored as <code>%s</code> (%d bytes).</p>
    <p>Thanks a lot!</p>
  </body>
</html>
''' % (html.escape(path), size)
