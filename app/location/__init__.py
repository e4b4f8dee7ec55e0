"""ZIP/state inference from unstructured document text."""
