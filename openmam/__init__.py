"""OpenMAM: media asset management on Open Source Cloud."""
