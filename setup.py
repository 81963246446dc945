from setuptools import setup, find_packages

setup(
    name="reactive-auth",
    version="0.1.0",
    description="Awaitable and streaming adapters for callback-based auth clients",
    author="Reactive Auth Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pydantic>=2.5.0",
        "structlog>=23.2.0",
        "reactivex>=4.0.4",
        "passlib[bcrypt]>=1.7.4",
        "bcrypt>=4.0.1,<5.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.11",
)
