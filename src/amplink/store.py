import json
import logging
import os

from amplink.channels import AssignmentTable
from amplink.registry import DeviceRegistry

logger = logging.getLogger(__name__)


class JsonStore:
    """
    Loads and saves the channel assignments and saved devices as a JSON document:
    ``{"ipAssignments": {...}, "numberAssignments": {...}, "devices": [...]}``

    :param path: the file to read and write. A missing file loads as empty.
    """

    def __init__(self, path, log=logger):
        self.path = path
        self.logger = log

    def load(self):
        """
        :return: a tuple of the AssignmentTable and the DeviceRegistry
        :raises ValueError: the file is not valid JSON, or holds an invalid channel or address
        """
        if not os.path.exists(self.path):
            self.logger.info("no saved assignments at %s" % self.path)
            return AssignmentTable(), DeviceRegistry()
        with open(self.path, encoding='utf-8') as f:
            values = json.load(f)
        return AssignmentTable.from_dict(values), DeviceRegistry.from_list(values.get('devices'))

    def save(self, table: AssignmentTable, registry: DeviceRegistry):
        values = table.to_dict()
        values['devices'] = registry.to_list()
        # the previous file survives until the new one is complete
        temp = self.path + '.tmp'
        with open(temp, 'w', encoding='utf-8') as f:
            json.dump(values, f, indent=2, sort_keys=True)
        os.replace(temp, self.path)
        self.logger.debug("saved assignments to %s" % self.path)
