"""Setup script for beadview package."""

from setuptools import find_packages, setup

setup(
    name="beadview",
    version="0.1.0",
    description="Terminal graph dashboard for beads work items",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(include=["beadview", "beadview.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "rich>=13.0",
        "textual>=0.47",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
