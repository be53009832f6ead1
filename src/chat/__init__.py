"""Chat — Stream channel provisioning on proposal acceptance."""
