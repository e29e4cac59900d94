from setuptools import setup, find_packages

# No third party dependencies, so importing the package should be safe.
import binlogtime

setup(
    name='binlogtime',
    version=binlogtime.__version__,
    description="Decoders for temporal column values in MySQL binary logs",
    packages=find_packages(exclude=['tests']),
    python_requires='>=3.6',
    extras_require={
        'test': ['pytest'],
        'doc': ['sphinx'],
    },
)
