"""Package definition for auditmark (personal code-audit tracker)."""

from setuptools import find_packages, setup

setup(
    name="auditmark",
    version="0.1.0",
    description="Track reviewed line ranges, audit notes and investigation threads per project",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "click>=8.1",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "auditmark=auditmark.cli:cli",
        ],
    },
)
