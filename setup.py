from setuptools import setup

with open("README.md") as f:
    readme = f.read()

_ = setup(
    name="certstress-ad",
    version="1.0.0",
    license="MIT",
    long_description=readme,
    long_description_content_type="text/markdown",
    python_requires=">=3.9",
    install_requires=[
        "asn1crypto~=1.5.1",
        "cryptography>=42.0.8",
        "impacket~=0.12.0",
        "dnspython~=2.7.0",
        "argcomplete>=3.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    packages=[
        "certstress",
        "certstress.commands",
        "certstress.commands.parsers",
        "certstress.lib",
    ],
    entry_points={
        "console_scripts": ["certstress=certstress.entry:main"],
    },
    description="Load testing for Active Directory Certificate Services",
)
