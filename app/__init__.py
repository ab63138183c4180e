"""
SharedGames application package.

  app/services/   business logic: fetching libraries, aggregating ownership,
                  enriching matches and Steam sign-in.

``sharedgames.py`` holds the Steam client and configuration;
``sharedgames_web.py`` is the HTTP layer.  Route handlers build one
``SharedGamesService`` at startup and call it per request, keeping the HTTP
layer free of matching rules.
"""
