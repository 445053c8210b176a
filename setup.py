"""Build the wadtools package."""
from setuptools import setup


setup()
