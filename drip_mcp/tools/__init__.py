"""Operation implementations: argument bundles in, canonical payloads out."""
