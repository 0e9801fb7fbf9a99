#!/usr/bin/env python
"""
wsconnector - Remote Apache virtual host management over SSH

Runs shell commands and pushes files to a web server through one
authenticated SSH session, using the scp sink protocol for uploads.
"""

import os
from setuptools import setup, find_packages

# Read the README for long description
here = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

# Version
VERSION = '0.1.0'

setup(
    name='wsconnector',
    version=VERSION,
    description='Remote command execution and scp uploads for Apache web servers',
    long_description=long_description,
    long_description_content_type='text/markdown',

    license='MIT',

    classifiers=[
        'Development Status :: 3 - Alpha',
        'Environment :: Console',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Internet :: WWW/HTTP :: HTTP Servers',
        'Topic :: System :: Systems Administration',
    ],

    keywords='ssh scp apache vhost paramiko',

    packages=find_packages(exclude=['tests', 'tests.*']),

    python_requires='>=3.10',

    install_requires=[
        'paramiko>=3.0',
        'PyYAML>=6.0',
    ],

    extras_require={
        'dev': [
            'pytest>=7.0',
        ],
    },
)
