from setuptools import setup, find_packages


setup(
    name="ebook-armor",
    version="0.1",
    packages=find_packages(include=["ebook_armor", "ebook_armor.*"]),
    description="Guard collections of electronic books against bit rot with checksum ledgers and parity-based recovery data.",
    author="vercingetorx",
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "ebook-armor=ebook_armor.cli:main",
        ]
    },
)
