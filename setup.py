#!/usr/bin/env python3
"""
loadersyms installation script
==============================

Symbol table extraction for PE loader images.
"""

from setuptools import setup, find_packages
import os

# Long description
def read_long_description():
    here = os.path.abspath(os.path.dirname(__file__))
    try:
        with open(os.path.join(here, 'README.md'), 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return "loadersyms - mdb ::nmadd commands from PE loader symbol tables"

setup(
    name="loadersyms",
    version="0.1.0",
    description="Emit mdb ::nmadd commands for the COFF symbols of a PE loader image",
    long_description=read_long_description(),
    long_description_content_type="text/markdown",

    # Package layout
    package_dir={"": "src"},
    packages=find_packages(where="src"),

    # Dependencies
    install_requires=[],
    extras_require={
        "test": ["pytest"],
    },

    python_requires=">=3.8",

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Debuggers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
    ],

    # Command line entry point
    entry_points={
        "console_scripts": [
            "loadersyms=loadersyms.main:main",
        ],
    },

    keywords="pe, coff, symbols, mdb, debugger, binary analysis",

    include_package_data=True,
    zip_safe=False,
)
