import os
from setuptools import setup, find_packages

def read(fname):
    return open(os.path.join(os.path.dirname(__file__), fname)).read()

setup(
    name = 'smt_session',
    version = '1.0.0',
    description = 'SMT-LIB2 command-language front end running scripts incrementally on a pySMT solver',
    long_description=read('README.md'),
    long_description_content_type='text/markdown',
    author = 'AWS Privacy & Security Automation',
    keywords = 'smt smtlib smt-session',
    license = "Apache",
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.8',
    install_requires=[
        'pysmt',
        'z3-solver',
        'click',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'smt-session = smt_session.cli:cli',
        ],
    },
)
