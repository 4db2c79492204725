from fxrates import logger


class ApplicationContext:
    """
    Centralized application context that provides access to the database manager,
    the state manager and the margin service. Serves as the dependency injection
    container shared by the services and the API.
    """

    def __init__(self, state_manager):
        """
        Initialize the application context.

        Args:
            state_manager: State holding the configuration (required)
        """
        if state_manager is None:
            raise ValueError("state_manager is REQUIRED")

        self._state_manager = state_manager
        self._config = state_manager.config
        self._database_manager = None
        self._margin_service = None

    @property
    def state_manager(self):
        return self._state_manager

    @property
    def config(self):
        return self._config

    @property
    def database_manager(self):
        """
        Get the database manager instance.

        Returns:
            The database manager instance
        """
        return self._database_manager

    @database_manager.setter
    def database_manager(self, database_manager):
        self._database_manager = database_manager

    @property
    def margin_service(self):
        """
        Get the margin service instance.

        Returns:
            The margin service instance
        """
        return self._margin_service

    @margin_service.setter
    def margin_service(self, margin_service):
        logger.debug("margin service registered")
        self._margin_service = margin_service
