from setuptools import setup, find_packages
import re

VERSIONFILE="asywoof/_version.py"
verstrline = open(VERSIONFILE, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (VERSIONFILE,))


setup(
	# Application name:
	name="asywoof",

	# Version number (initial):
	version=verstr,

	# Packages
	packages=find_packages(),

	# Include additional files into the package
	include_package_data=True,

	zip_safe = True,
	#
	# license="LICENSE.txt",
	description="Ad-hoc self-terminating file transfer over plain HTTP",
	long_description="",

	python_requires='>=3.8',
	classifiers=[
		"Programming Language :: Python :: 3.8",
		"Operating System :: POSIX",
	],
	install_requires=[
		'h11>=0.14.0',
		'tqdm',
	],
	extras_require={
		'test': [
			'pytest',
		],
	},
	entry_points={
		'console_scripts': [
			'asywoof = asywoof.examples.woof:main',
		],
	}
)
