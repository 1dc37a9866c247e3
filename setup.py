from setuptools import setup
import io
import os
import re

here = os.path.abspath(os.path.dirname(__file__))

def read(*filenames, **kwargs):
    encoding = kwargs.get('encoding', 'utf-8')
    sep = kwargs.get('sep', '\n')
    buf = []
    for filename in filenames:
        with io.open(os.path.join(here, filename), encoding=encoding) as f:
            buf.append(f.read())
    return sep.join(buf)

long_description = read('README.rst')
version = re.search(r"^__version__ = '([^']+)'", read('blogmark.py'), re.M).group(1)

setup(
    name='pyblogmark',
    version=version,
    license='MIT',
    author='Brendan Abel',
    author_email='007brendan@gmail.com',
    description='Markdown to HTML conversion for a single page blog.',
    long_description=long_description,
    py_modules=['blogmark'],
    include_package_data=True,
    platforms='any',
    python_requires='>=3.6',
    entry_points={
        'console_scripts': ['blogmark = blogmark:main'],
    },
    classifiers=[
        'Programming Language :: Python',
        'Development Status :: 4 - Beta',
        'Natural Language :: English',
        'Environment :: Web Environment',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Software Development :: Libraries :: Python Modules',
        'Topic :: Internet :: WWW/HTTP :: Dynamic Content',
        'Topic :: Text Processing :: Markup',
        'Topic :: Text Processing :: Markup :: HTML',
        ],
    extras_require={
        'testing': ['pytest'],
    }
)
