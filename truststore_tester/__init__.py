"""Trust store synchronization harness: mock TSL provider and OCSP responder plus expectation checks."""
