from setuptools import setup


def readme():
    with open("README.rst", encoding="UTF-8") as readme_file:
        return readme_file.read()


configuration = {
    "name": "stepumap",
    "version": "0.1.0",
    "description": "Uniform Manifold Approximation and Projection, one epoch at a time",
    "long_description": readme(),
    "long_description_content_type": "text/x-rst",
    "classifiers": [
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Intended Audience :: Developers",
        "License :: OSI Approved",
        "Programming Language :: Python",
        "Topic :: Software Development",
        "Topic :: Scientific/Engineering",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX",
        "Operating System :: Unix",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    "keywords": "dimension reduction manifold embedding",
    "license": "BSD",
    "packages": ["stepumap", "stepumap.tests"],
    "install_requires": [
        "numpy >= 1.17",
        "scikit-learn >= 0.22",
        "scipy >= 1.0",
        "numba >= 0.49",
        "tqdm",
    ],
    "extras_require": {
        "test": ["pytest"],
    },
    "ext_modules": [],
    "cmdclass": {},
    "tests_require": ["pytest"],
    "data_files": (),
    "zip_safe": False,
}

setup(**configuration)
