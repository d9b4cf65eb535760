"""NiceGUI pages."""
