# Copyright Red Hat
#
# tests/__init__.py - Directory snapshot recorder test package
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    debug = None
    verbose = 0
    version = False
    manual = False
    folders = "folders.json"
    sequential = False
    trace = False
    log_entries = False
    quiet = True
    timeout = None
    output_dir = "."
    compress = None
    paths = []
    json = False
    summary = False
    changes_only = False
    no_reorder = False
    before = None
    after = None


def have_root():
    """Return ``True`` if the test suite is running as the root user,
    and ``False`` otherwise.
    """
    return os.geteuid() == 0 and os.getegid() == 0
