import re

import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

with open("pyunraid/__init__.py", "r") as fh:
    version_tuple = re.search(r"^version_tuple = \((\d+), (\d+), (\d+)\)", fh.read(), re.M).groups()

setuptools.setup(
    name="pyunraid",
    version=".".join(version_tuple),
    description="Python module to poll an Unraid server through its GraphQL API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=['pyunraid', 'pyunraid.*']),
    python_requires='>=3.10',
    install_requires=[
        'requests',
        'urllib3',
        'pydantic>=2',
        'pydantic-settings',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
