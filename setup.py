from setuptools import find_packages, setup

setup(
    name="container-kitty",
    version="0.1.0",
    packages=find_packages(
        include=[
            "kitty_common",
            "kitty_common.*",
            "kitty_controller",
            "kitty_controller.*",
            "kitty_server",
            "kitty_server.*",
            "kitty_client",
            "kitty_client.*",
        ]
    ),
    package_data={
        "kitty_controller": ["fixtures/*.json", "fixtures/*.yml"],
    },
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "pydantic>=2.0",
        "uvicorn>=0.24.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kitty=kitty_client.cli:main",
            "kitty-controller=kitty_controller.__main__:main",
        ],
    },
    python_requires=">=3.11",
)
