"""
plansandbox - Setup Configuration

Sandboxed file and shell tools for agent plans: path confinement,
symlink-safe directory walks, ignore-aware glob search and shell
command execution inside a plan folder.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Core dependencies
core_deps = [
    # Framework core
    "pydantic>=2.11.9",
    "psutil>=7.1.0",
    # Ignore files (.gitignore / .ignore)
    "pathspec>=0.12.1",
    # Logging
    "python-json-logger>=2.0.7,<3",  # v2.x (v3 requires testing)
]

# Development dependencies
dev_deps = [
    # Testing
    "pytest>=8.4.1",
    "pytest-asyncio>=1.0.0",
    "pytest-mock>=3.14.1",
    "pytest-cov>=6.2.1",
]

setup(
    name="plansandbox",
    version="0.1.0",

    # Package description
    description="Sandboxed file and shell tools for agent plans",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Package discovery
    packages=find_packages(where="src"),
    package_dir={"": "src"},

    # Python version requirement
    python_requires=">=3.11",

    # Dependencies
    install_requires=core_deps,

    # Optional dependencies (extras)
    extras_require={
        "core": core_deps,
        "dev": core_deps + dev_deps,
    },

    # PyPI classifiers
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Framework :: AsyncIO",
    ],

    keywords=["agents", "sandbox", "filesystem", "glob", "gitignore", "symlinks", "shell"],

    license="Apache-2.0",

    include_package_data=True,
    zip_safe=False,
)
