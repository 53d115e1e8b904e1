"""Data transfer objects passed between application and infrastructure."""
