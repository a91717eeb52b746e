"""Adapters to electronic structure programs. Each one is imported
explicitly, since the programs themselves are optional."""
