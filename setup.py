from setuptools import setup, find_packages

setup(
    name="archivestore",
    version="1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    install_requires=[
        "PyYAML>=6.0",
        "httpx>=0.24",
    ],
    extras_require={
        "test": ["pytest>=7.2"],
    },
    entry_points={
        "console_scripts": [
            "archivestore=archivestore.client:main",
        ],
    },
)
