# Copyright Red Hat
#
# dirsnap/__main__.py - Directory snapshot recorder module entry point
#
# This file is part of the dirsnap project.
#
# SPDX-License-Identifier: Apache-2.0
import sys

from dirsnap.command import main

sys.exit(main(sys.argv))
