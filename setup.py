from setuptools import find_packages, setup
from pathlib import Path


def read_readme() -> str:
    readme = Path(__file__).parent / "README.md"
    return readme.read_text(encoding="utf-8") if readme.exists() else ""


setup(
    name="hpc-nodestat",
    version="1.0.0",
    description="Slurm node status report that flags nodes with unexpected CPU load, memory pressure or job placement.",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author="hpc-nodestat contributors",
    python_requires=">=3.9",
    license="MIT",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=["PyYAML"],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "slurm-node-stats=hpc_nodestat.cli:main",
        ]
    },
)
