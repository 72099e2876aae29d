from flask_wtf import FlaskForm
from wtforms import IntegerField, PasswordField, StringField, TextAreaField
from wtforms.validators import DataRequired, Email, InputRequired, Length, NumberRange, Optional

# Forms read JSON bodies (Flask-WTF wraps request.get_json() as form data).
# Session cookies are the only credential and CSRF hardening is left to
# the deployment, so tokens are off.


class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def first_error(self):
        for name, messages in self.errors.items():
            if messages:
                return name, messages[0]
        return None, None

    def submitted_data(self, payload):
        """Field values for the keys the client actually sent."""
        return {name: f.data for name, f in self._fields.items() if name in payload}


class LoginForm(ApiForm):
    username = StringField("Username", validators=[DataRequired()])
    password = PasswordField("Password", validators=[DataRequired()])


class SignupForm(ApiForm):
    username = StringField("Username", validators=[DataRequired(), Length(max=80)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=6)])
    name = StringField("Name", validators=[DataRequired(), Length(max=255)])
    email = StringField("Email", validators=[DataRequired(), Email(check_deliverability=False)])


class ProfileForm(ApiForm):
    name = StringField("Name", validators=[Optional(), Length(max=255)])
    email = StringField("Email", validators=[Optional(), Email(check_deliverability=False)])
    password = PasswordField("Password", validators=[Optional(), Length(min=6)])


class BookForm(ApiForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=255)])
    author = StringField("Author", validators=[DataRequired(), Length(max=255)])
    description = TextAreaField("Description")
    isbn = StringField("ISBN", validators=[DataRequired(), Length(max=50)])
    genre = StringField("Genre", validators=[DataRequired(), Length(max=100)])
    publication_year = IntegerField("Publication Year", validators=[Optional()])
    cover_image = StringField("Cover Image", validators=[Optional(), Length(max=500)])
    total_copies = IntegerField("Total Copies", default=1, validators=[Optional(), NumberRange(min=1)])
    available_copies = IntegerField("Available Copies", validators=[Optional(), NumberRange(min=0)])
    pages = IntegerField("Pages", validators=[Optional(), NumberRange(min=1)])


class BookUpdateForm(BookForm):
    title = StringField("Title", validators=[Optional(), Length(max=255)])
    author = StringField("Author", validators=[Optional(), Length(max=255)])
    isbn = StringField("ISBN", validators=[Optional(), Length(max=50)])
    genre = StringField("Genre", validators=[Optional(), Length(max=100)])


class BorrowForm(ApiForm):
    book_id = IntegerField("Book", validators=[InputRequired()])


class ReviewForm(ApiForm):
    # range is checked by the rating aggregator
    rating = IntegerField("Rating", validators=[InputRequired()])
    comment = TextAreaField("Comment", validators=[Optional(), Length(max=2000)])


class ImportForm(ApiForm):
    count = IntegerField("Number of Books", default=20, validators=[Optional(), NumberRange(min=1, max=500)])
    title = StringField("Title Filter")
    authors = StringField("Author Filter")
