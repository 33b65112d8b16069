from setuptools import setup, find_packages


setup(
    name="asynczip",
    version="0.1",
    packages=find_packages(include=["asynczip", "asynczip.*"]),
    description="Concurrent, random-access reading of ZIP archive entries with asyncio.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[
        "aiofiles>=23.1.0",
        "pycryptodomex>=3.23.0",
        "zstandard>=0.22.0",
    ],
    entry_points={
        "console_scripts": [
            "asynczip=asynczip.cli:main",
        ]
    },
)
