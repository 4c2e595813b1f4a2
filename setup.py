from setuptools import setup, find_packages

setup(
    name="create2-deployer",
    version="0.1.0",
    description="Deterministic contract deployment through a CREATE2 factory",
    packages=find_packages(include=["create2_deployer", "create2_deployer.*"]),
    install_requires=[
        "web3>=6.0.0",
        "eth-account>=0.8.0",
        "eth-utils>=2.0.0",
        "eth-abi>=4.0.0",
        "aiohttp>=3.8.0",
        "jsonschema>=4.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "create2-deploy=create2_deployer.main:run",
        ],
    },
)
