"""
Loads layered configobj files and applies their values to module attributes.

Configuration for a module named ``a.b.name`` lives in files named after the last part of the
module name, in the module's directory:

- ``name.default.cfg``   shipped defaults
- ``name.<os>.cfg``      platform specialization (``linux``, ``windows``, ``osx``)
- ``~/.<package>.cfg``   user overrides
- ``name.cfg``           local overrides next to the module

The values are merged in that order and validated against ``name.schema.cfg``, which also
converts them to their declared types. Values are then looked up under the nested sections
``[a] [[b]] [[[name]]]`` and assigned to the module attributes of the same name.
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'


def config_flavor(name, flavor=None):
    configname = name if not flavor else name + '.' + flavor
    return configname


def config_filename(name, directory):
    """
    Determines the location of a config file in the given directory.
    """
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The file is named after the base, followed by
    a period and then the specialization, if given, otherwise just the base name.
    A missing file gives an empty configuration.
    """
    file = config_filename(config_flavor(name, subpart), directory)
    return load_config_file_base(file, False)


def load_schema_file(name, directory):
    """
    Loads the validation schema for a configuration. Schema values such as
    ``integer(min=1, default=2)`` contain commas, so they are not parsed as lists.
    """
    file = config_filename(config_flavor(name, 'schema'), directory)
    if os.path.exists(file):
        return ConfigObj(file, list_values=False, _inspec=True)
    return ConfigObj(list_values=False, _inspec=True)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def user_config_file(package):
    return os.path.expanduser('~/.' + package + config_extension)


def describe_errors(config, result):
    """
    >>> describe_errors(ConfigObj(), False)
    'the configuration is invalid'
    """
    if result is False:
        return 'the configuration is invalid'
    messages = []
    for section_list, key, error in flatten_errors(config, result):
        location = '/'.join(section_list + ([key] if key is not None else []))
        messages.append('%s: %s' % (location, error if error is not False else 'missing'))
    return ', '.join(messages)


def load_config(name, directory, user_file=None):
    """
        Loads all the configuration files that relate to the given name, in this order:
        - the default specialization
        - the platform specialization
        - the user override, when user_file is given
        - the local configuration
        The configurations are flattened into a single configuration, and then validated
        against the schema specialization.
    :param name: the base name of the configuration files
    :param directory: the location of the configuration files
    :param user_file: the path of an optional per-user configuration file
    :return: the merged and validated configuration
    """
    config = ConfigObj()
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    if user_file:
        config.merge(load_config_file_base(user_file, must_exist=False))
    config.merge(config_flavor_file(name, directory))

    config.configspec = load_schema_file(name, directory)
    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        raise ConfigObjError("the config file %s failed validation: %s" % (name, describe_errors(config, result)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:        The root configuration
    :param path:        An iterable that lists the names of the nested sections to resolve
    :return: The configuration section identified by the path, or None
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf(conf: Section, target):
    """
    Sets each attribute of the target that has the same name as a value in the configuration.
    Sub-sections and names that the target does not have are ignored.
    """
    for k, v in conf.items():
        if not isinstance(v, Section) and hasattr(target, k):
            setattr(target, k, v)


def apply_conf_path(conf: Section, name_parts, target):
    conf = fetch_conf_path(conf, name_parts)
    if conf:
        apply_conf(conf, target)


def configure_module(module, config_name=None, user_file=None):
    """
    Applies the configuration to the given module.
    The configuration is loaded from files named after the module, in the module's directory.
    :return: the configuration that was applied
    """
    if not module.__package__:
        raise ConfigObjError('module %s has no package defined' % module.__name__)
    name_parts = module.__name__.split('.')
    if not config_name:
        config_name = name_parts[-1]
    if user_file is None:
        user_file = user_config_file(name_parts[0])
    conf = load_config(config_name, os.path.dirname(module.__file__), user_file)
    apply_conf_path(conf, name_parts, module)
    return conf
