from setuptools import setup

# metadata and options are declared in setup.cfg
setup()
