from setuptools import setup, find_packages

setup(
    name="testbench",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main", "run_server"],
    install_requires=[
        "pydantic>=2",
        "python-dotenv",
        "click",
        "aiosqlite",
        "google-genai",
        "fastapi",
        "uvicorn",
        "restrictedpython",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "testbench=testbench.cli.cli:main",
        ],
    },
)
