"""Frame composition and picture conversion for the e-paper panel."""
