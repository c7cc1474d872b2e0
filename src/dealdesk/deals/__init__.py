"""Deal domain: schemas, remote gateway, buyer status client and seller aggregation."""
