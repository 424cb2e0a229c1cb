from setuptools import find_packages, setup

setup(
    name="graph-fusion",
    version="0.1.0-alpha",
    description="Graph Fusion - Pattern-matching rewrites for tensor dataflow graphs",
    packages=find_packages(exclude=["test", "test.*"]),
    python_requires=">=3.10",
    install_requires=["numpy", "networkx", "tabulate"],
    extras_require={"test": ["pytest"]},
)
