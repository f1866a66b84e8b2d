from setuptools import setup, find_namespace_packages

# read the contents of your README file
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(name='nmini',
      version='0.1.0',
      package_dir={'': 'src'},
      packages=find_namespace_packages(where='src', include=['nmini', 'nmini.*']),
      description='nmini: minimal nostr command line client, relays reached over tor.',
      long_description=long_description,
      long_description_content_type='text/markdown',
      python_requires='>=3.10',
      install_requires=[
            'aiohttp>=3.8.4',
            'aiohttp-socks>=0.8.0',
            'bech32==1.2.0',
            'pycryptodome>=3.18.0',
            'secp256k1>=0.14.0',
            'rfc3986>=2.0.0',
      ],
      extras_require={
            'test': [
                  'pytest>=7.0',
            ]
      },
      entry_points={
            'console_scripts': [
                  'nmini=nmini.cli:main'
            ]
      },
      license='MIT',
      zip_safe=False
)
