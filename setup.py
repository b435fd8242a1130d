"""
Setup file.
"""

import os

from setuptools import setup

URL = "https://github.com/stackforge/stackforge"
KEYWORDS = "build orchestration native toolchain artifacts tarball incremental git"
HERE = os.path.dirname(os.path.abspath(__file__))



if __name__ == "__main__":
    setup(
        maintainer="Stackforge Developers",
        keywords=KEYWORDS,
        url=URL,
        include_package_data=True)
