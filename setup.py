import os

from setuptools import find_packages, setup


VERSION = "0.1.0"


def read(fname):
    return open(os.path.join(os.path.dirname(__file__), fname)).read()


TESTS_REQUIRE = [
    "pytest",
    "pytest-cov",
    "pytest-mock",
    "pyfakefs",
    "doc8",
]


setup(
    name="stagecrypt",
    version=VERSION,
    description=("Client-side envelope encryption for files staged to object storage"),
    license="BSD",
    keywords="encryption envelope aes stage upload",
    long_description=read("README.rst"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Topic :: Security :: Cryptography",
        "Programming Language :: Python :: 3",
    ],
    python_requires=">=3.7",
    install_requires=["click", "cryptography>=3.1", "smart-open>=5.1"],
    tests_require=TESTS_REQUIRE,
    extras_require={"test": TESTS_REQUIRE},
    zip_safe=True,
    packages=find_packages(exclude=("docs", "tests*")),
    include_package_data=True,
    entry_points={"console_scripts": ["stagecrypt=stagecrypt.commands:cli"]},
)
