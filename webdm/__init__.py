"""
webdm: package catalog and install service.

This package is responsible for:
* Listing installed and store packages as one merged catalog.
* Reporting the status of individual packages, including installs in flight.
* Dispatching installs to the package-management service in the background.
"""
