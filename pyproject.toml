[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mieru"
version = "2.4.0"
description = "Configuration management and block ciphers for the mieru proxy client and server"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["proxy", "socks5", "aes-gcm", "pbkdf2", "configuration"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Security :: Cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["mieru"]

[tool.pytest.ini_options]
addopts = "-ra"
