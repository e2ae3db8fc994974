"""pcscli - Command-line transfers for Baidu Netdisk."""

__version__ = "0.1.0"
