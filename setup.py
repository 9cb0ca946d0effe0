"""
Setup script for NetAuth - authenticated encrypted channel over untrusted transports.

This library provides:
- Diffie-Hellman key agreement with fixed or freshly generated parameters
- PBKDF2-HMAC-SHA256 key derivation
- AES-CBC cipher sessions with pinned padding
- Wire obfuscation of every frame
- Username/password authentication and an encrypted request channel
- Reference asyncio TCP server and client
"""

from setuptools import setup, find_packages
import os

this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='netauth',
    version='1.0.0',
    description='Authenticated encrypted channel with Diffie-Hellman handshake and password login',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Topic :: Security :: Cryptography',
        'Topic :: System :: Networking',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Environment :: Console',
    ],
    python_requires='>=3.8',
    install_requires=[
        'cryptography>=42.0.4',
        'argon2-cffi>=23.1.0',
        'rich>=13.7.0',
        'tomli>=2.0.1; python_version < "3.11"',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'netauth-server=netauth.main:server_main',
            'netauth-client=netauth.main:client_main',
        ],
    },
)
