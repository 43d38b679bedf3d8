# Packaging for ibperfquery. The default runtime configuration ships as package
# data so the collector runs without a user-supplied config file.

from setuptools import find_packages, setup

setup(
    name="ibperfquery",
    version="1.0.0",
    description="Parallel InfiniBand port counter collection",
    license="MIT",
    python_requires=">=3.8",
    packages=find_packages(include=["ibperfquery", "ibperfquery.*"]),
    package_data={"ibperfquery": ["config/ibperfquery.default"]},
    install_requires=[
        "prometheus_client",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "ibperfquery=ibperfquery.collect:main",
        ],
    },
)
