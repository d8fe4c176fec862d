
__version__ = "0.1.0"
__banner__ = \
"""
# asywoof %s
# ad-hoc single file webserver
""" % __version__
