"""Build script for the sigscan package.

``sigscan`` is pure Python; the test extra pulls in ``coverage`` which the
unit tests use to record per-suite coverage data.
"""

from setuptools import find_packages, setup

setup(
    name="aob-sigscan",
    version="0.3.0",
    description="Compile array-of-bytes signatures and scan buffers for them",
    packages=find_packages(where="src", include=("sigscan*",)),
    package_dir={"": "src"},
    python_requires=">=3.10",
    extras_require={"test": ["coverage", "pytest"]},
    zip_safe=False,
)
