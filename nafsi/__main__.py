"""Run the CDN server: python -m nafsi"""
from .app import main

main()
