from setuptools import setup, find_packages


setup(
    name="pfs",
    version="0.1",
    packages=find_packages(),
    description="Reader and writer for PFS container archives with index-derived payload obfuscation.",
    author="vercingetorx",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "pfs=pfs.cli:main",
        ]
    },
)
