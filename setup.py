from setuptools import setup, find_packages
import os
import re

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [
        line.strip() for line in fh if line.strip() and not line.startswith("#")
    ]


def read_version():
    with open(os.path.join("tsextract", "__init__.py")) as f:
        content = f.read()
    return re.search(r'__version__ = "(.*)"', content).group(1)


setup(
    name="ts-extract",
    version=read_version(),
    description="Extract per-date pixel time series from dated raster stacks at points, lines and polygons",
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=[
        "tsextract",
        "spatial",
        "geospatial",
        "gis",
        "remote sensing",
        "raster",
        "vector",
        "time series",
        "zonal statistics",
        "modis",
        "extraction",
        "python",
    ],
    packages=find_packages(exclude=("tests", "tests.*")),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: GIS",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={"test": ["pytest>=7.0", "affine>=2.4,<3"]},
    license="GPL-3.0-or-later",
)
