from setuptools import find_packages, setup


def get_version():
    with open("gpuval/__init__.py") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().replace('"', "").replace("'", "")
    raise RuntimeError("No version found!")


setup(
    name="gpuval",
    version=get_version(),
    description="gpuval: single-GPU hardware validation runs with PASS/FAIL classification",
    author="GPU Validation Kit Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "loguru",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest"],
    },
    package_data={
        "gpuval": [
            "configs/*.yaml",
        ]
    },
    entry_points={
        "console_scripts": [
            "gpuval=gpuval.cli.main:main",
        ]
    },
    python_requires=">=3.8",
    include_package_data=True,
    zip_safe=False,
)
