"""naslock — unlock encrypted TrueNAS datasets with secrets kept in KeePass."""

__version__ = "0.1.0"
